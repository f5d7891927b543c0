"""Premium module -- subscriptions, product catalogue, and the free-tier gate."""
