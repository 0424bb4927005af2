from pydantic import BaseModel

from course_uploads.models.enums import CallerRole


class Caller(BaseModel):
    """Authenticated caller as resolved by the authorization collaborator."""

    user_id: str
    role: CallerRole

    @property
    def is_admin(self) -> bool:
        return self.role == CallerRole.ADMIN

    def can_manage(self, owner_id: str) -> bool:
        """Admins manage everything; everyone else only what they own."""
        return self.is_admin or self.user_id == owner_id
