from pydantic import BaseModel

from assessment.core.constants import RoleEnum


class TokenPayload(BaseModel):
    user_id: int | None = None
    role: RoleEnum | None = None
    jti: str | None = None
    exp: int | None = None


class CurrentUser(BaseModel):
    id: int
    role: RoleEnum

    @property
    def is_student(self) -> bool:
        return self.role == RoleEnum.STUDENT

    @property
    def is_staff(self) -> bool:
        return self.role in (RoleEnum.TEACHER, RoleEnum.ADMIN)
