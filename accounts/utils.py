# accounts/utils.py
def has_group(user, *group_names):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return user.groups.filter(name__in=list(group_names)).exists()


