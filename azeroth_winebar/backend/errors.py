#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error kinds raised by the Azeroth Winebar backend.

Each error carries a short title and a one-sentence remediation hint; the
frontend prints exactly that pair for a fatal error.
"""


class AzerothWinebarError(Exception):
    """Base class for all expected failures."""

    title = "Operation failed"
    hint = "Check the log file for details."
    recoverable = False

    def __init__(self, message: str = "", hint: str = None, title: str = None):
        super().__init__(message or self.title)
        if hint is not None:
            self.hint = hint
        if title is not None:
            self.title = title

    @property
    def kind(self) -> str:
        return type(self).__name__


class EnvUnsupported(AzerothWinebarError):
    title = "Unsupported environment"
    hint = "Run Azeroth Winebar on a 64-bit Linux host with a readable /proc."


class DependencyMissing(AzerothWinebarError):
    title = "Missing dependency"
    hint = "Install the missing tool with your distribution's package manager and try again."
    recoverable = True

    def __init__(self, tool: str, message: str = "", hint: str = None):
        self.tool = tool
        super().__init__(message or f"Required tool not found: {tool}", hint=hint)


class InsufficientResources(AzerothWinebarError):
    title = "Insufficient system resources"
    hint = "Add more RAM or increase swap space (16 GB RAM and 40 GB RAM + swap are required)."


class PrivilegeDenied(AzerothWinebarError):
    title = "Administrative privileges required"
    hint = "Re-run the step and approve the authentication prompt, or run the fix manually as root."


class ElevationCancelled(PrivilegeDenied):
    title = "Authentication cancelled"
    hint = "The change was not applied. Run the step again when you are ready to authenticate."


class NoElevationAvailable(PrivilegeDenied):
    title = "No elevation available"
    hint = "Install polkit (pkexec) or sudo, or run Azeroth Winebar as root."


class NetworkError(AzerothWinebarError):
    title = "Network error"
    hint = "Check your internet connection and try again."
    recoverable = True


class IntegrityError(AzerothWinebarError):
    title = "Download verification failed"
    hint = "The downloaded file was incomplete or malformed. Try again or pick another release."


class ConflictError(AzerothWinebarError):
    title = "Conflict"
    hint = "Resolve the conflict and try again."


class InstanceBusy(ConflictError):
    title = "Azeroth Winebar is busy"
    hint = "Another instance is already running. Wait for it to finish before starting a new one."


class UserCancelled(AzerothWinebarError):
    title = "Cancelled"
    hint = "Nothing was changed. Run the step again when you are ready."
    recoverable = True


class PrefixCorrupt(AzerothWinebarError):
    title = "Wine prefix is incomplete"
    hint = "Recreate the wine prefix and run the installation again."


class InternalInvariant(AzerothWinebarError):
    title = "Internal error"
    hint = "This is a bug in Azeroth Winebar. Please report it together with the log file."
