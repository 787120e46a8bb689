"""Backend strategies: orchestration and foundation-models."""
