from typing import List, Optional
from uuid import uuid4

from common.models.resources import Resource, ResourceKind
from common.repository.resource_repo import ResourceRepository
from common.schemas.resources import ResourceRequest
from common.utils.constants import TOUR_RESOURCE_NAME
from common.utils.custom_exceptions import NotFoundException


class ResourceService:
    def __init__(self, resource_repo: ResourceRepository):
        self.resource_repo = resource_repo

    def add_resource(self, req: ResourceRequest) -> Resource:
        resource = Resource(
            resource_id=req.resource_id or str(uuid4()),
            name=req.name,
            kind=req.kind,
            capacity=req.capacity,
            is_active=req.is_active,
            description=req.description,
            facilities=req.facilities,
        )
        self.resource_repo.add_resource(resource=resource)
        return resource

    def list_resources(
        self, kind: Optional[ResourceKind] = None, include_inactive: bool = False
    ) -> List[Resource]:
        kinds = [kind] if kind else list(ResourceKind)
        resources = []
        for k in kinds:
            resources.extend(self.resource_repo.get_resources_by_kind(k))
        if not include_inactive:
            resources = [r for r in resources if r.is_active]
        return resources

    def get_bookable_resource(self, resource_id: str) -> Resource:
        resource = self.resource_repo.get_resource_by_id(resource_id)
        if resource is None or not resource.is_active:
            raise NotFoundException("resource", resource_id, 404)
        return resource

    def get_tour_resource(self) -> Resource:
        tours = [r for r in self.resource_repo.get_resources_by_kind(ResourceKind.TOUR) if r.is_active]
        if not tours:
            raise NotFoundException("tour", TOUR_RESOURCE_NAME, 404)
        for tour in tours:
            if tour.name == TOUR_RESOURCE_NAME:
                return tour
        return tours[0]

    def set_active(self, resource_id: str, is_active: bool) -> Resource:
        resource = self.resource_repo.get_resource_by_id(resource_id)
        if resource is None:
            raise NotFoundException("resource", resource_id, 404)
        self.resource_repo.update_resource_active(resource, is_active)
        resource.is_active = is_active
        return resource
