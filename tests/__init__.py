"""
Test suite for the Clinic Appointment System.

Contains unit tests for the scheduling engine and API tests for the
HTTP tier.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
