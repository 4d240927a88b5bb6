import typing

import pydantic

from certification_backend.utils.base_types import IsoTimestamp, UserId


class UserProfileModel(pydantic.BaseModel):
    """
    Pydantic model representing a user profile stored in DynamoDB.
    Only the platform-wide certificate state is owned here; identity fields live with the auth subsystem.
    """

    userId: UserId = pydantic.Field(description="Partition Key")
    testCompleted: bool = pydantic.Field(default=False, description="Whether a qualifying final test was passed")
    testScore: typing.Optional[int] = pydantic.Field(default=None, ge=0, le=100)
    certificateAvailableAt: typing.Optional[IsoTimestamp] = pydantic.Field(
        default=None, description="ISO8601 timestamp from which the certificate may be issued"
    )
    certificateIssued: bool = False
    certificateUrl: typing.Optional[str] = None
    updatedAt: typing.Optional[IsoTimestamp] = None
