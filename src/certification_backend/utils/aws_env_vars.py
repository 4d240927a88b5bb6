import os
import typing


def _get_resource_by_env_var(env_var: str) -> str:
    table_name = os.environ.get(env_var)
    if not table_name:
        raise ValueError(f"Missing environment variable: {env_var}")
    return table_name


def get_curriculum_table_name() -> str:
    return _get_resource_by_env_var("CURRICULUM_TABLE_NAME")


def get_content_progress_table_name() -> str:
    return _get_resource_by_env_var("CONTENT_PROGRESS_TABLE_NAME")


def get_enrollments_table_name() -> str:
    return _get_resource_by_env_var("ENROLLMENTS_TABLE_NAME")


def get_test_results_table_name() -> str:
    return _get_resource_by_env_var("TEST_RESULTS_TABLE_NAME")


def get_user_profile_table_name() -> str:
    return _get_resource_by_env_var("USER_PROFILE_TABLE_NAME")


def get_secrets_table_name() -> str:
    return _get_resource_by_env_var("SECRETS_TABLE_NAME")


def get_certificate_min_exam_score() -> typing.Optional[int]:
    """
    Optional server-side floor on the module exam score required before a certificate is issued.
    Returns None when unset or not an integer in [0, 100].
    """
    value = os.environ.get("CERTIFICATE_MIN_EXAM_SCORE", "").strip()
    if not value:
        return None
    try:
        floor = int(value)
    except ValueError:
        return None
    if floor < 0 or floor > 100:
        return None
    return floor


def get_certificate_base_url() -> str:
    """Prefix for generated certificate references. Defaults to a relative reference."""
    return os.environ.get("CERTIFICATE_BASE_URL", "").rstrip("/")
