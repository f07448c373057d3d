"""
Clinic Appointment System

A FastAPI-based backend for a clinic: doctor administration, patient
booking and cancellation, and per-doctor availability with conflict-free
scheduling.
"""

__version__ = "1.0.0"
