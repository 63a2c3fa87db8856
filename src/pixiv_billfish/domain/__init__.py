"""Domain layer: Pixiv metadata source and the sync engine."""
