class WatchRouterError(Exception):
    """Base for all watchrouter errors"""


class InstanceNotFoundError(WatchRouterError):
    def __init__(self, service: str, instance_id: int):
        super().__init__(f"{service} instance {instance_id} not found")
        self.service = service
        self.instance_id = instance_id


class ServiceNotInitializedError(WatchRouterError):
    def __init__(self, service: str, instance_id: int):
        super().__init__(f"{service} service for instance {instance_id} not initialized")
        self.service = service
        self.instance_id = instance_id


class ManagerInitializationError(WatchRouterError):
    pass


class ArrApiError(WatchRouterError):
    """Non-2xx answer from a Sonarr/Radarr instance"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ItemAlreadyExistsError(ArrApiError):
    pass


class InvalidCriteriaError(WatchRouterError):
    pass
