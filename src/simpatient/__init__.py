"""SimPatient: voice-driven virtual patient sessions for clinical simulation."""

__version__ = "0.1.0"
