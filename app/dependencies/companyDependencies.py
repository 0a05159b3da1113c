from typing import Annotated
from fastapi import Depends
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, MANAGER_ROLES
from app.modules.auth.schemas import AuthContext

# Tenant-aware dependencies grouped by the roles they admit
AnyRoleContext = Annotated[AuthContext, Depends(AuthDependencies.require_role(STAFF_ROLES))]
ManagerContext = Annotated[AuthContext, Depends(AuthDependencies.require_role(MANAGER_ROLES))]
