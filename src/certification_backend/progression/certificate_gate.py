import logging
import typing
from datetime import datetime, timedelta

from certification_backend.dynamodb.enrollments_table import EnrollmentsTable
from certification_backend.dynamodb.user_profile_table import UserProfileTable
from certification_backend.models.certificate_models import (
    CertificateState,
    CertificateStatusModel,
    IssuedCertificateModel,
)
from certification_backend.models.enrollment_models import PAYMENT_COMPLETED, EnrollmentModel
from certification_backend.progression.errors import ForbiddenError, NotEnrolledError
from certification_backend.utils.base_types import IsoTimestamp, ModuleId, UserId
from certification_backend.utils.time_utils import parse_iso, to_iso, utc_now

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

CERTIFICATE_AVAILABILITY_DELAY = timedelta(hours=48)


def derive_certificate_state(
    certificate_available_at: typing.Optional[str], certificate_issued: bool, now: datetime
) -> CertificateState:
    """
    NOT_ELIGIBLE -> PENDING_AVAILABILITY -> AVAILABLE -> ISSUED.
    AVAILABLE is never stored; it is the time predicate now >= certificateAvailableAt.
    """
    if certificate_issued:
        return "ISSUED"
    if not certificate_available_at:
        return "NOT_ELIGIBLE"
    if now >= parse_iso(certificate_available_at):
        return "AVAILABLE"
    return "PENDING_AVAILABILITY"


class CertificateGate:
    """
    Decides when a certificate becomes issuable, per module enrollment and at the profile level.

    The availability timestamp is armed once, when the qualifying test is first passed, and is never
    moved afterwards. Issuance is idempotent: once issued, the stored certificate reference is returned.
    """

    def __init__(
        self,
        enrollments_table: EnrollmentsTable,
        user_profile_table: UserProfileTable,
        min_exam_score: typing.Optional[int] = None,
        certificate_base_url: str = "",
        clock: typing.Callable[[], datetime] = utc_now,
    ) -> None:
        self.enrollments_table = enrollments_table
        self.user_profile_table = user_profile_table
        self.min_exam_score = min_exam_score
        self.certificate_base_url = certificate_base_url
        self.clock = clock

    def arm(self, user_id: UserId, module_id: ModuleId, exam_score: int, passed_at: datetime) -> IsoTimestamp:
        """
        Moves the enrollment (and the profile mirror) from NOT_ELIGIBLE to PENDING_AVAILABILITY.
        Re-arming after the first pass leaves certificateAvailableAt untouched.
        """
        available_at = to_iso(passed_at + CERTIFICATE_AVAILABILITY_DELAY)

        if self.enrollments_table.set_certificate_available_at_once(user_id, module_id, available_at):
            _LOGGER.info(f"Certificate armed for user {user_id}, module {module_id}. Available at {available_at}.")
        else:
            _LOGGER.info(f"Certificate already armed for user {user_id}, module {module_id}.")

        self.user_profile_table.record_final_test_pass(user_id, exam_score, to_iso(passed_at))
        self.user_profile_table.set_certificate_available_at_once(user_id, available_at)
        return available_at

    def _make_certificate_url(self, user_id: UserId, module_id: typing.Optional[ModuleId]) -> str:
        file_name = f"certificate-{user_id}-{module_id}.pdf" if module_id else f"certificate-{user_id}.pdf"
        if self.certificate_base_url:
            return f"{self.certificate_base_url}/{file_name}"
        return file_name

    def _get_paid_enrollment(self, user_id: UserId, module_id: ModuleId) -> EnrollmentModel:
        enrollment = self.enrollments_table.get_enrollment(user_id, module_id, consistent_read=True)
        if enrollment is None or enrollment.paymentStatus != PAYMENT_COMPLETED:
            raise NotEnrolledError(f"Not enrolled in module {module_id} or payment not completed.")
        return enrollment

    def get_certificate_status(
        self, user_id: UserId, module_id: typing.Optional[ModuleId] = None
    ) -> CertificateStatusModel:
        now = self.clock()
        if module_id:
            enrollment = self._get_paid_enrollment(user_id, module_id)
            available_at = enrollment.certificateAvailableAt
            issued = enrollment.certificateIssued
            url = enrollment.certificateUrl
        else:
            profile = self.user_profile_table.get_profile(user_id)
            available_at = profile.certificateAvailableAt if profile else None
            issued = profile.certificateIssued if profile else False
            url = profile.certificateUrl if profile else None

        state = derive_certificate_state(available_at, issued, now)
        return CertificateStatusModel(
            userId=user_id,
            moduleId=module_id,
            state=state,
            certificateAvailableAt=available_at,
            isCertificateAvailable=state in ("AVAILABLE", "ISSUED"),
            certificateIssued=issued,
            certificateUrl=url,
        )

    def _check_available(self, available_at: typing.Optional[str], now: datetime) -> None:
        if not available_at:
            raise ForbiddenError("Certificate not yet available.")
        if now < parse_iso(available_at):
            raise ForbiddenError("Certificate not yet available.", details={"availableAt": available_at})

    def issue_certificate(
        self, user_id: UserId, module_id: typing.Optional[ModuleId] = None
    ) -> IssuedCertificateModel:
        if module_id:
            return self._issue_module_certificate(user_id, module_id)
        return self._issue_profile_certificate(user_id)

    def _issue_module_certificate(self, user_id: UserId, module_id: ModuleId) -> IssuedCertificateModel:
        enrollment = self._get_paid_enrollment(user_id, module_id)
        if enrollment.certificateIssued and enrollment.certificateUrl:
            return IssuedCertificateModel(certificateUrl=enrollment.certificateUrl, alreadyIssued=True)

        if enrollment.progressPercentage < 100:
            raise ForbiddenError(
                "Module not fully completed.", details={"progressPercentage": enrollment.progressPercentage}
            )
        if not enrollment.examCompleted:
            raise ForbiddenError("Module test not passed.")
        if self.min_exam_score is not None and (enrollment.examScore or 0) < self.min_exam_score:
            raise ForbiddenError(
                "Module test score below the certificate minimum.",
                details={"examScore": enrollment.examScore, "minimumScore": self.min_exam_score},
            )
        self._check_available(enrollment.certificateAvailableAt, self.clock())

        certificate_url = self._make_certificate_url(user_id, module_id)
        if self.enrollments_table.mark_certificate_issued(user_id, module_id, certificate_url):
            _LOGGER.info(f"Issued certificate {certificate_url} for user {user_id}, module {module_id}.")
            return IssuedCertificateModel(certificateUrl=certificate_url)

        # Lost a race with a concurrent issuance; return what that request stored.
        existing = self._get_paid_enrollment(user_id, module_id)
        return IssuedCertificateModel(certificateUrl=existing.certificateUrl or certificate_url, alreadyIssued=True)

    def _issue_profile_certificate(self, user_id: UserId) -> IssuedCertificateModel:
        profile = self.user_profile_table.get_profile(user_id)
        if profile is None or not profile.testCompleted:
            raise ForbiddenError("Test not completed.")
        if profile.certificateIssued and profile.certificateUrl:
            return IssuedCertificateModel(certificateUrl=profile.certificateUrl, alreadyIssued=True)
        self._check_available(profile.certificateAvailableAt, self.clock())

        certificate_url = self._make_certificate_url(user_id, None)
        if self.user_profile_table.mark_certificate_issued(user_id, certificate_url):
            _LOGGER.info(f"Issued certificate {certificate_url} for user {user_id}.")
            return IssuedCertificateModel(certificateUrl=certificate_url)

        existing = self.user_profile_table.get_profile(user_id)
        existing_url = existing.certificateUrl if existing else None
        return IssuedCertificateModel(certificateUrl=existing_url or certificate_url, alreadyIssued=True)
