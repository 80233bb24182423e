"""Subscription queries: their model, evaluation and rendering."""