import copy
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from azure.core.exceptions import ResourceNotFoundError
from azure.mgmt.compute.models import OSDisk

from azure_custom_image.client import ResourceKind
from azure_custom_image.config import SampleConfig
from azure_custom_image.workflow import ProvisioningWorkflow, WorkflowNames

SUBSCRIPTION_ID = '00000000-0000-0000-0000-000000000000'
ADMIN_USERNAME = 'azureuser'
ADMIN_PASSWORD = 'Sample-Passw0rd!'
PUBLIC_IP_ADDRESS = '203.0.113.10'

RESOURCE_PATHS = {
    ResourceKind.STORAGE_ACCOUNT: 'Microsoft.Storage/storageAccounts/{name}',
    ResourceKind.VIRTUAL_NETWORK: 'Microsoft.Network/virtualNetworks/{name}',
    ResourceKind.SUBNET: 'Microsoft.Network/virtualNetworks/{parent}/subnets/{name}',
    ResourceKind.PUBLIC_IP: 'Microsoft.Network/publicIPAddresses/{name}',
    ResourceKind.NETWORK_SECURITY_GROUP: 'Microsoft.Network/networkSecurityGroups/{name}',
    ResourceKind.NETWORK_INTERFACE: 'Microsoft.Network/networkInterfaces/{name}',
    ResourceKind.VIRTUAL_MACHINE: 'Microsoft.Compute/virtualMachines/{name}',
    ResourceKind.VM_EXTENSION: 'Microsoft.Compute/virtualMachines/{parent}/extensions/{name}',
    ResourceKind.DISK: 'Microsoft.Compute/disks/{name}',
    ResourceKind.IMAGE: 'Microsoft.Compute/images/{name}',
}


def resource_id(kind, rg_name, name, parent=None):
    base = f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{rg_name}"
    if kind is ResourceKind.RESOURCE_GROUP:
        return base
    return f"{base}/providers/" + RESOURCE_PATHS[kind].format(name=name, parent=parent)


class FakeCloudClient:
    """In-memory stand-in for AzureResourceClient.

    Keeps a (kind, group, parent, name) -> resource map so upserts are
    idempotent, records every call in order, and raises configured
    errors for a given (method, target).
    """

    def __init__(self):
        self.resources = {}
        self.calls = []
        self.failures = {}
        self.sas_uri = 'https://md-fake.blob.core.windows.net/abcd/abcd?sv=2018-03-28&sr=b&si=x&sig=y'

    def fail(self, method, target, error):
        self.failures[(method, target)] = error

    def _check(self, method, target):
        error = self.failures.get((method, target))
        if error is not None:
            raise error

    def calls_to(self, method):
        return [call for call in self.calls if call[0] == method]

    def create_or_update(self, kind, rg_name, name, descriptor, parent=None):
        self.calls.append(('create_or_update', kind, name))
        self._check('create_or_update', name)

        key = (kind, rg_name, parent, name)
        if isinstance(descriptor, dict):
            resource = SimpleNamespace(**descriptor)
        else:
            resource = copy.deepcopy(descriptor)
        resource.id = resource_id(kind, rg_name, name, parent)
        resource.name = name

        if kind is ResourceKind.PUBLIC_IP:
            resource.ip_address = PUBLIC_IP_ADDRESS
        if kind is ResourceKind.VIRTUAL_MACHINE:
            profile = resource.storage_profile
            if profile.os_disk is None:
                profile.os_disk = OSDisk(create_option='FromImage')
            if profile.os_disk.name is None:
                profile.os_disk.name = f"{name}_OsDisk_1"

        self.resources[key] = resource
        return resource

    def get(self, kind, rg_name, name, parent=None):
        self.calls.append(('get', kind, name))
        self._check('get', name)

        if kind is ResourceKind.SUBNET:
            if (ResourceKind.VIRTUAL_NETWORK, rg_name, None, parent) not in self.resources:
                raise ResourceNotFoundError(f"Virtual network {parent} not found")
            return SimpleNamespace(id=resource_id(kind, rg_name, name, parent), name=name)
        if kind is ResourceKind.DISK:
            return SimpleNamespace(id=resource_id(kind, rg_name, name), name=name)

        try:
            return self.resources[(kind, rg_name, parent, name)]
        except KeyError:
            raise ResourceNotFoundError(f"{kind.value} {name} not found")

    def delete(self, kind, resource_id):
        self.calls.append(('delete', kind, resource_id))
        self._check('delete', kind)
        for key, resource in list(self.resources.items()):
            if resource.id == resource_id or (
                    kind is ResourceKind.RESOURCE_GROUP and resource.id.startswith(resource_id + '/')):
                del self.resources[key]

    def deallocate(self, rg_name, vm_name):
        self.calls.append(('deallocate', rg_name, vm_name))
        self._check('deallocate', vm_name)

    def generalize(self, rg_name, vm_name):
        self.calls.append(('generalize', rg_name, vm_name))
        self._check('generalize', vm_name)

    def grant_disk_access(self, rg_name, disk_name, level, duration_minutes):
        self.calls.append(('grant_disk_access', rg_name, disk_name, level, duration_minutes))
        self._check('grant_disk_access', disk_name)
        return self.sas_uri

    def list_resources(self, rg_name):
        self.calls.append(('list_resources', rg_name))
        self._check('list_resources', rg_name)
        return [
            {'name': name, 'type': kind.value, 'location': getattr(resource, 'location', None)}
            for (kind, group, _, name), resource in self.resources.items()
            if group == rg_name and kind is not ResourceKind.RESOURCE_GROUP
        ]


@pytest.fixture
def config(tmp_path):
    return SampleConfig(
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
        subscription_id=SUBSCRIPTION_ID,
        config_file=str(tmp_path / 'config.yaml'),
        secret_file=str(tmp_path / '.env.secret'),
        log_dir=str(tmp_path / 'logs'),
    )


@pytest.fixture
def fake_client():
    return FakeCloudClient()


@pytest.fixture
def names():
    return WorkflowNames.generate()


@pytest.fixture
def deprovisioner():
    return Mock(return_value=True)


@pytest.fixture
def workflow(fake_client, config, deprovisioner, names):
    return ProvisioningWorkflow(fake_client, config, deprovisioner=deprovisioner, names=names)
