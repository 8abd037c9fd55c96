"""
Azure resource client

Thin facade over the Azure management SDK clients. Every call blocks
until the long-running operation behind it reaches a terminal state.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.compute.models import GrantAccessData
from azure.mgmt.core.tools import parse_resource_id
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.storage import StorageManagementClient

logger = logging.getLogger(__name__)


class ResourceKind(Enum):
    RESOURCE_GROUP = 'resource group'
    STORAGE_ACCOUNT = 'storage account'
    VIRTUAL_NETWORK = 'virtual network'
    SUBNET = 'subnet'
    PUBLIC_IP = 'public IP address'
    NETWORK_SECURITY_GROUP = 'network security group'
    NETWORK_INTERFACE = 'network interface'
    VIRTUAL_MACHINE = 'virtual machine'
    VM_EXTENSION = 'virtual machine extension'
    DISK = 'managed disk'
    IMAGE = 'image'


# Kinds addressed as (resource group, parent, name)
CHILD_KINDS = (ResourceKind.SUBNET, ResourceKind.VM_EXTENSION)


class AzureResourceClient:
    """Create, read, delete and act on resources in one subscription"""

    def __init__(self, credential, subscription_id: str):
        self.subscription_id = subscription_id
        self.credential = credential

        # Initialize Azure clients
        self.compute_client = ComputeManagementClient(
            self.credential, subscription_id
        )
        self.resource_client = ResourceManagementClient(
            self.credential, subscription_id
        )
        self.network_client = NetworkManagementClient(
            self.credential, subscription_id
        )
        self.storage_client = StorageManagementClient(
            self.credential, subscription_id
        )

    def _operations(self, kind: ResourceKind):
        """Return the SDK operation group serving a resource kind"""
        return {
            ResourceKind.RESOURCE_GROUP: self.resource_client.resource_groups,
            ResourceKind.STORAGE_ACCOUNT: self.storage_client.storage_accounts,
            ResourceKind.VIRTUAL_NETWORK: self.network_client.virtual_networks,
            ResourceKind.SUBNET: self.network_client.subnets,
            ResourceKind.PUBLIC_IP: self.network_client.public_ip_addresses,
            ResourceKind.NETWORK_SECURITY_GROUP: self.network_client.network_security_groups,
            ResourceKind.NETWORK_INTERFACE: self.network_client.network_interfaces,
            ResourceKind.VIRTUAL_MACHINE: self.compute_client.virtual_machines,
            ResourceKind.VM_EXTENSION: self.compute_client.virtual_machine_extensions,
            ResourceKind.DISK: self.compute_client.disks,
            ResourceKind.IMAGE: self.compute_client.images,
        }[kind]

    @staticmethod
    def _address(kind: ResourceKind, rg_name: str, name: str, parent: Optional[str]) -> tuple:
        if kind is ResourceKind.RESOURCE_GROUP:
            return (name,)
        if kind in CHILD_KINDS:
            if not parent:
                raise ValueError(f"A {kind.value} needs its parent resource name")
            return (rg_name, parent, name)
        return (rg_name, name)

    def create_or_update(self, kind: ResourceKind, rg_name: str, name: str, descriptor,
                         parent: Optional[str] = None):
        """Upsert a resource and wait for the provider to finish"""
        operations = self._operations(kind)
        address = self._address(kind, rg_name, name, parent)
        logger.debug(f"create_or_update {kind.value} {'/'.join(address)}")

        if kind is ResourceKind.RESOURCE_GROUP:
            # Resource group creation is synchronous in the SDK
            return operations.create_or_update(*address, descriptor)
        if kind is ResourceKind.STORAGE_ACCOUNT:
            poller = operations.begin_create(*address, descriptor)
        else:
            poller = operations.begin_create_or_update(*address, descriptor)
        return poller.result()

    def get(self, kind: ResourceKind, rg_name: str, name: str, parent: Optional[str] = None):
        operations = self._operations(kind)
        address = self._address(kind, rg_name, name, parent)
        if kind is ResourceKind.STORAGE_ACCOUNT:
            return operations.get_properties(*address)
        return operations.get(*address)

    def delete(self, kind: ResourceKind, resource_id: str) -> None:
        """Delete a resource by its full resource id and wait for completion"""
        parts = parse_resource_id(resource_id)
        rg_name = parts.get('resource_group')
        if kind is ResourceKind.RESOURCE_GROUP:
            address = (rg_name,)
        elif kind in CHILD_KINDS:
            address = (rg_name, parts['name'], parts['child_name_1'])
        else:
            address = (rg_name, parts['name'])

        logger.debug(f"delete {kind.value} {resource_id}")
        self._operations(kind).begin_delete(*address).result()

    def deallocate(self, rg_name: str, vm_name: str) -> None:
        self.compute_client.virtual_machines.begin_deallocate(rg_name, vm_name).result()

    def generalize(self, rg_name: str, vm_name: str) -> None:
        self.compute_client.virtual_machines.generalize(rg_name, vm_name)

    def grant_disk_access(self, rg_name: str, disk_name: str, level: str, duration_minutes: int) -> str:
        """Grant time-limited access to a managed disk and return its SAS URI"""
        grant = GrantAccessData(access=level, duration_in_seconds=duration_minutes * 60)
        access = self.compute_client.disks.begin_grant_access(rg_name, disk_name, grant).result()
        return access.access_sas

    def list_resources(self, rg_name: str) -> List[Dict]:
        """List all resources in the resource group"""
        resources = []
        for resource in self.resource_client.resources.list_by_resource_group(rg_name):
            resources.append({
                'name': resource.name,
                'type': resource.type,
                'location': resource.location
            })
        return resources
