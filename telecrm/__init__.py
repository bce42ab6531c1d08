"""telecrm: lead assignment and lifecycle engine for a telecalling CRM."""

__version__ = "1.0.0"
