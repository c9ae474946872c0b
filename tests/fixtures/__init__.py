"""
DistrictRadar Test Fixtures Package
In-memory collaborators and row factories for ranking tests.
"""

from .ranking import *
