"""
Time formatting helpers
"""


def format_duration(seconds: int) -> str:
    """
    Format a call duration for display.

    Returns "M:SS" below one hour, "H:MM:SS" otherwise.
    """
    seconds = max(0, int(seconds))
    hrs = seconds // 3600
    mins = (seconds % 3600) // 60
    secs = seconds % 60
    if hrs > 0:
        return f"{hrs}:{mins:02d}:{secs:02d}"
    return f"{mins}:{secs:02d}"
