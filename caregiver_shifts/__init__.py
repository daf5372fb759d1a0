"""
Caregiver shift scheduling and timeline engine.
"""
