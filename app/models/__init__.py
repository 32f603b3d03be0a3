from app.models.application import Application
from app.models.application_subject import ApplicationSubject
from app.models.stage_verification import StageVerification

__all__ = ["Application", "ApplicationSubject", "StageVerification"]
