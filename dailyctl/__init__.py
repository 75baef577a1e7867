"""dailyctl - run programs once a day, with retries."""
