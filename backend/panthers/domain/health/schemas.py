"""Pydantic schemas for daily health check-ins and alerts."""

from __future__ import annotations

from datetime import date
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field

Score = Annotated[int, Field(ge=1, le=10)]


class CheckIn(BaseModel):
	player_id: str = Field(..., min_length=1)
	check_in_date: date
	energy_level: Score
	sleep_hours: float = Field(..., ge=0, le=24)
	sleep_quality: Score
	soreness_level: Score
	hydration_level: Score
	nutrition_quality: Score
	stress_level: Score
	mood: Score
	pain_level: Score
	training_readiness: Score
	pain_location: Optional[str] = None
	overall_mood: Optional[str] = None
	medication_taken: Optional[str] = None
	additional_notes: Optional[str] = Field(default=None, max_length=2000)
	symptoms: Optional[List[str]] = None

	def to_record(self) -> dict:
		record = self.model_dump(mode="json")
		# Empty optionals are stored as NULL, not "" or [].
		for key in ("pain_location", "overall_mood", "medication_taken", "additional_notes", "symptoms"):
			if not record.get(key):
				record[key] = None
		return record


class HealthAlert(BaseModel):
	subject: str = Field(..., min_length=1, max_length=200)
	message: str = Field(..., min_length=1)
	alert_type: str = Field(default="general")
	priority: str = Field(default="normal", pattern="^(low|normal|high|urgent)$")
	recipients: List[str] = Field(default_factory=list)
	send_email: bool = True
	send_sms: bool = False
	communication_id: Optional[str] = None

	def to_body(self) -> dict:
		return {
			"communicationId": self.communication_id,
			"subject": self.subject,
			"message": self.message,
			"alertType": self.alert_type,
			"priority": self.priority,
			"recipients": list(self.recipients),
			"sendEmail": self.send_email,
			"sendSMS": self.send_sms,
		}
