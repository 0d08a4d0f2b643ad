"""
Participant resolution across E-PIX and gPAS.

This module handles:
- Resolving E-PIX match outcomes to a single MPI
- Prompting, merging and splitting possible matches
- Creating and collecting pseudonyms in trial and lab domains
"""

from src.resolution.orchestrator import Orchestrator

__all__ = ["Orchestrator"]
