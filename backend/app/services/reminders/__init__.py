"""Reminder pipeline: due-window evaluator -> recipient resolver -> dedup ledger -> rate-limited dispatcher."""
