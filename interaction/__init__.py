"""Interaction package utilities."""

from interaction.alert_feedback import AlertFeedback, AlertFeedbackConfig

__all__ = ["AlertFeedback", "AlertFeedbackConfig"]
