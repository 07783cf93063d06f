"""Default values and constants for testing the dragBTE package."""

DEFAULT_TEMPERATURE = 10.0  # K
DEFAULT_VOLUME = 1.0  # nm^3
PH_ENERGIES = [[0.02, 0.04], [0.05, 0.08]]  # eV
PH_VELOCITY = 100.0  # km/s
PH_CHANNEL_RATES = {"3ph": [[1.0, 3.0], [4.0, 7.0]], "iso": [[1.0, 1.0], [1.0, 1.0]]}  # 1/ps
EL_ENERGIES = [[-0.01, 0.02], [0.005, 0.03]]  # eV
EL_VELOCITY = 200.0  # km/s
EL_CHANNEL_RATES = {"eph": [[2.0, 4.0], [5.0, 8.0]]}  # 1/ps
PH_TRANSITIONS = ["Wp", "Wm", "Y"]
EL_TRANSITIONS = ["Xplus", "Xminus", "Xchimp", "Xee"]
