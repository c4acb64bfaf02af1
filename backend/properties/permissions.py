from rest_framework.permissions import BasePermission

from accounts.models import PropertyMembership


class IsPropertyMember(BasePermission):
    """
    Allow access only to active members of the property owning the requested booking.
    Superusers automatically pass.
    """

    allowed_roles = {
        PropertyMembership.OWNER,
        PropertyMembership.ADMIN,
        PropertyMembership.VIEWER,
    }

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.user.is_superuser:
            return True

        property_obj = getattr(view, "property", None)
        if property_obj is None:
            return False

        return PropertyMembership.objects.filter(
            user=request.user,
            property=property_obj,
            role__in=self.allowed_roles,
            is_active=True,
        ).exists()


class IsPropertyOwnerOrAdmin(IsPropertyMember):
    allowed_roles = {PropertyMembership.OWNER, PropertyMembership.ADMIN}
