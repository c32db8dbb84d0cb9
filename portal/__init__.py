"""Training portal: module forests, access grants and watch progress roll-ups."""
