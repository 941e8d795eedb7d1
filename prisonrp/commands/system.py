from prisonrp.models import PermissionLevel, StaffUser

# Actor used for changes made from the command line; it has no staff_users row
SYSTEM_ACTOR = StaffUser(id=None, username='cli', permission_level=PermissionLevel.OWNER)
