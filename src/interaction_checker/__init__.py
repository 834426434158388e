"""Medication interaction checker.

This package lets clinicians and students pick medications, food items and
complementary medicines and see the known pairwise interactions between
them, with severity and recommendation text, as resolved by the backend
interaction service.
"""
