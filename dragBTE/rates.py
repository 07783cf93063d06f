"""Aggregation of per-channel relaxation-time-approximation (RTA) scattering rates.

Channel rates are combined with Matthiessen's rule in two passes: first all bulk channels are summed, then surface
channels such as thin-film scattering are evaluated on that partial sum and added.
"""

from . import xp


def aggregate_rates(bulk_rates, surface_rates=()):
    """Combine channel rate tables into the total RTA rate.

    Parameters
    ----------
    bulk_rates : Sequence[array-like]
        Rate tables of the bulk channels [1/ps], each of shape (nibz, nb).
    surface_rates : Sequence[Callable], optional
        Surface channels. Each is called with the partial bulk sum and must return a rate table of the same shape.

    Returns
    -------
    array-like
        Total rate table, shape (nibz, nb).

    Raises
    ------
    ValueError
        If no bulk channel is given or the tables do not share one shape.

    """
    bulk_rates = [xp.asarray(r, dtype=xp.float64) for r in bulk_rates]
    if not bulk_rates:
        raise ValueError("At least one bulk scattering channel is required.")
    shape = bulk_rates[0].shape
    for r in bulk_rates[1:]:
        if r.shape != shape:
            raise ValueError(f"Shape mismatch between rate tables: {r.shape} != {shape}")
    partial = xp.zeros(shape, dtype=xp.float64)
    for r in bulk_rates:
        partial = partial + r

    total = partial.copy()
    for surface in surface_rates:
        extra = xp.asarray(surface(partial), dtype=xp.float64)
        if extra.shape != shape:
            raise ValueError(f"Shape mismatch between rate tables: {extra.shape} != {shape}")
        total = total + extra
    return total


def boundary_rates(vels_irred, length):
    """Casimir boundary scattering rate ``|v| / L``.

    Parameters
    ----------
    vels_irred : array-like
        IBZ group velocities [km/s], shape (nibz, nb, 3).
    length : float
        Boundary length [nm].

    Returns
    -------
    array-like
        Boundary rates [1/ps], shape (nibz, nb).

    """
    if length is None or length <= 0:
        raise ValueError(f"Boundary length must be positive, got {length}")
    return xp.linalg.norm(xp.asarray(vels_irred), axis=-1) / length


def thinfilm_rates(vels_irred, partial_rates, height, normal, specularity=0.0, ballistic=False):
    r"""Thin-film surface scattering rate.

    The diffusive form uses the Fuchs-Sondheimer suppression of the in-plane mean free path. With the projected mean
    free path :math:`\lambda = |v \cdot n| / \Gamma` and :math:`x = h / \lambda`,

    .. math::

        S = 1 - (1 - p) \frac{\lambda}{h} \frac{1 - e^{-x}}{1 - p e^{-x}}, \qquad
        \Gamma_{tf} = \Gamma \frac{1 - S}{S}.

    The ballistic form, also used for states with vanishing bulk rate, is
    :math:`\Gamma_{tf} = 2 (1 - p) |v \cdot n| / ((1 + p) h)`.

    Parameters
    ----------
    vels_irred : array-like
        IBZ group velocities [km/s], shape (nibz, nb, 3).
    partial_rates : array-like
        Sum of the bulk rates [1/ps], shape (nibz, nb).
    height : float
        Film height [nm].
    normal : array-like
        Unit normal of the film, shape (3,).
    specularity : float, optional
        Specularity parameter p in [0, 1].
    ballistic : bool, optional
        If ``True``, always use the ballistic form.

    Returns
    -------
    array-like
        Thin-film rates [1/ps], shape (nibz, nb).

    """
    if height is None or height <= 0:
        raise ValueError(f"Thin-film height must be positive, got {height}")
    p = float(specularity)
    vn = xp.abs(xp.asarray(vels_irred) @ xp.asarray(normal, dtype=xp.float64))
    partial_rates = xp.asarray(partial_rates, dtype=xp.float64)
    casimir = 2.0 * (1.0 - p) * vn / ((1.0 + p) * height)
    if ballistic:
        return casimir

    diffusive = xp.zeros_like(partial_rates)
    mask = (partial_rates > 0) & (vn > 0)
    lam = vn[mask] / partial_rates[mask]
    x = height / lam
    # 1 - exp(-x) without cancellation for lam >> h
    one_minus_ex = -xp.expm1(-x)
    suppression = 1.0 - (1.0 - p) * (lam / height) * one_minus_ex / (1.0 - p + p * one_minus_ex)
    diffusive[mask] = partial_rates[mask] * (1.0 - suppression) / suppression
    return xp.where(partial_rates > 0, diffusive, casimir)
