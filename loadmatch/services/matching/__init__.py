"""Load matching engine: context, candidates, scoring, persistence and suggestion lifecycle."""
