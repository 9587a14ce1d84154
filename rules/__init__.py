"""
Rules layer — reference tables and the pure derivations built on them.
"""

from rules.rulebook import RuleBook, default_rulebook, load_rulebook
from rules import engine

__all__ = [
    "RuleBook",
    "default_rulebook",
    "load_rulebook",
    "engine",
]
