"""Staging engine: baseline, stages, validation, commit, rollback and recovery."""
