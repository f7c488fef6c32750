# core/utils_roles.py
from django.contrib.auth.models import Group

ROLE_ADMIN = "ADMIN"
ROLE_CASHIER = "CASHIER"
ROLE_SALES_ADVISOR = "SALES_ADVISOR"
ROLE_VERIFIER = "VERIFIER"
ROLE_STUDENT = "STUDENT"

DEFAULT_GROUPS = [
    ROLE_ADMIN,
    ROLE_CASHIER,
    ROLE_SALES_ADVISOR,
    ROLE_VERIFIER,
    ROLE_STUDENT,
]

# rôles autorisés à réviser les vouchers / gérer la caja
STAFF_REVIEW_ROLES = (ROLE_ADMIN, ROLE_CASHIER, ROLE_VERIFIER)


def ensure_groups_exist():
    for name in DEFAULT_GROUPS:
        Group.objects.get_or_create(name=name)


def add_user_to_group(user, group_name: str, keep_existing: bool = True):
    ensure_groups_exist()
    g = Group.objects.get(name=group_name)
    if keep_existing:
        user.groups.add(g)
    else:
        user.groups.set([g])
    return g
