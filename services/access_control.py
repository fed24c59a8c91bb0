"""
Access Control
Decides whether an actor may read or change a patient's records
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

import models
from exceptions import AuthorizationError, NotFoundError


logger = logging.getLogger(__name__)


class AccessControl:
    """
    Patients may act on their own records; caregivers on the records of
    patients linked to them.
    """

    def is_linked(self, caregiver: models.User, patient_id: int) -> bool:
        return any(p.id == patient_id for p in caregiver.linked_patients)

    def can_access(self, actor: models.User, patient_id: int) -> bool:
        if actor is None or not actor.is_active:
            return False
        if actor.is_patient:
            return actor.id == patient_id
        if actor.is_caregiver:
            return self.is_linked(actor, patient_id)
        return False

    def ensure_access(
        self,
        actor: models.User,
        patient_id: int,
        message: Optional[str] = None
    ) -> None:
        """Raise AuthorizationError unless actor is the patient or a linked caregiver"""
        if not self.can_access(actor, patient_id):
            logger.warning(
                f"User {getattr(actor, 'id', None)} denied access to patient {patient_id}"
            )
            raise AuthorizationError(message or "Access denied. You are not linked to this patient.")

    def ensure_caregiver(self, actor: models.User) -> None:
        if actor is None or not actor.is_caregiver:
            raise AuthorizationError("Access denied. Required role: caregiver.")

    def ensure_caregiver_for(
        self,
        actor: models.User,
        patient_id: int,
        created_by: Optional[int] = None
    ) -> None:
        """Caregiver linked to the patient, or the caregiver who created the record"""
        self.ensure_caregiver(actor)
        if self.is_linked(actor, patient_id):
            return
        if created_by is not None and created_by == actor.id:
            return
        raise AuthorizationError("Access denied. You can only manage records of your linked patients.")

    def get_patient(self, session: Session, patient_id: int) -> models.User:
        patient = session.get(models.User, patient_id)
        if not patient or not patient.is_patient:
            raise NotFoundError("Patient", patient_id)
        return patient


# Singleton instance
access_control = AccessControl()
