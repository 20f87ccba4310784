"""Use cases: contribution tracking, payouts, pool lifecycle and collaborators."""
