def format_number(num) -> str:
    """
    Format a number with k/m/b suffixes, e.g. 1500 -> "1.5k", 2000000 -> "2m".
    """
    if num is None:
        return "0"
    for threshold, suffix in ((1_000_000_000, "b"), (1_000_000, "m"), (1_000, "k")):
        if abs(num) >= threshold:
            scaled = num / threshold
            return f"{int(scaled)}{suffix}" if scaled == int(scaled) else f"{scaled:.1f}{suffix}"
    if num == int(num):
        return f"{int(num):,}"
    return f"{num:,.1f}"


def format_seconds(seconds) -> str:
    """Format a duration in seconds as m:ss or h:mm:ss."""
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
