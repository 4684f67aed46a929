"""Role-based permission classes shared by the clinic APIs."""

from collections.abc import Iterable

from rest_framework.permissions import BasePermission

from medsync.users.models import User


def _user_has_role(user, roles: Iterable[str]) -> bool:
    if not (user and getattr(user, "is_authenticated", False)):
        return False
    return getattr(user, "role", None) in set(roles)


def is_clinic_admin(user) -> bool:
    return bool(
        user
        and getattr(user, "is_authenticated", False)
        and getattr(user, "is_clinic_admin", False)
    )


class _RolePermission(BasePermission):
    """Base helper to gate access by role names."""

    allowed_roles: tuple[str, ...] = ()
    allow_admin: bool = True

    def has_permission(self, request, view) -> bool:
        user = getattr(request, "user", None)
        if self.allow_admin and is_clinic_admin(user):
            return True
        return _user_has_role(user, self.allowed_roles)


class IsPatient(_RolePermission):
    allowed_roles = (User.Role.PATIENT,)
    allow_admin = False


class IsAppointmentParticipant(BasePermission):
    """Object-level: the patient or doctor of the appointment, or an admin."""

    def has_object_permission(self, request, view, obj) -> bool:
        user = request.user
        if is_clinic_admin(user):
            return True
        return user.pk in {obj.patient_id, obj.doctor_id}
