"""
Retail Order Analytics Engine

Answers ad-hoc questions (units sold, revenue, attach rate) over monthly
order exports and a published product catalog.
"""

__version__ = "1.0.0"
