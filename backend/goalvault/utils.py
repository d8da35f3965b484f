def format_units(value: int) -> str:
    """Integer base units as a string, so JSON clients never round them."""
    return str(int(value))


def bps_to_percent(value: int) -> str:
    """
    350 -> '3.50'
    Display only; accounting stays in integer basis points.
    """
    whole, frac = divmod(int(value), 100)
    return f"{whole}.{frac:02d}"
