"""
Prior Authorization FHIR Server

FHIR REST surface for Prior Authorization and Patient identity resources,
built around the Patient/$match identity-matching operation.
"""

__version__ = "0.1.0"
