# backend/clinic_booking/repositories/patient_repository.py
"""
Patient data access, including the payment methods and insurance records a
patient owns.
"""

from typing import Optional, cast

from sqlalchemy.orm import Session

from ..models.patient import Patient, PatientInsurance, PaymentMethod
from .base_repository import BaseRepository


class PatientRepository(BaseRepository[Patient]):
    def __init__(self, db: Session):
        super().__init__(db, Patient)

    def get_payment_method(self, payment_method_id: str) -> Optional[PaymentMethod]:
        return cast(Optional[PaymentMethod], self.db.get(PaymentMethod, payment_method_id))

    def get_insurance(self, insurance_id: str) -> Optional[PatientInsurance]:
        return cast(Optional[PatientInsurance], self.db.get(PatientInsurance, insurance_id))
