"""LeadPilot: rate-limited, cached AI generation and automated property prospecting."""

__version__ = "0.1.0"
