"""Core building blocks shared by detection, task supervision and the CLI."""
