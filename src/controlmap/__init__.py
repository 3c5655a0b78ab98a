"""controlmap - AI-assisted ISM to NIST 800-53 control mapping."""

__version__ = "1.0.0"
