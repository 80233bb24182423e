"""Compiled item filters that select what a transaction message contains."""