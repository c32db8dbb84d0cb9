"""Terminal front-ends for browsing the catalogue."""
