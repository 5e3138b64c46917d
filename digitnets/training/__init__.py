"""Training loops, evaluation metrics and run orchestration."""
