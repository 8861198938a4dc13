"""Calendar models, recurrence expansion and aggregated views."""
