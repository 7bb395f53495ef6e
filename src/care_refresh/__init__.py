"""Healthcare facility, law and news data-refresh pipeline."""
