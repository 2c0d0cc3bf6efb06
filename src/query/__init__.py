"""Filter query translation.

This module turns key/operator/value query parameters into predicate trees.
It also evaluates trees in memory and parses read pagination controls.
"""
