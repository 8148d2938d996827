"""Recommendation engine for BasketRec.

Offline, the itemset counter and rule generator turn completed orders into
directed association rules held by the recommendation store. Online, the merge
engine combines those rules with personalization and AI suggestions for a cart.
"""
