"""
Clinician assistant for WhatsApp.

This module provides the LLM-driven assistant that lets clinicians manage
patients, appointments and clinic histories through chat messages.
"""

from .service import ClinicAgentService, DispatchState, run_dispatch_loop

__all__ = ["ClinicAgentService", "DispatchState", "run_dispatch_loop"]
