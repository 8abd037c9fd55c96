"""Tests for resource descriptor construction and disk layout checks."""

from types import SimpleNamespace

import pytest

from azure_custom_image.config import DataDiskSpec
from azure_custom_image.descriptors import (
    custom_script_extension_params,
    image_params,
    image_vm_managed_disks_params,
    image_vm_params,
    network_interface_params,
    network_security_group_params,
    unmanaged_vm_params,
    validate_image_disk_layout,
    validate_luns,
    vhd_uri,
)
from azure_custom_image.errors import DiskLayoutError, DuplicateLunError

IMAGE_ID = '/subscriptions/sub/resourceGroups/rg1/providers/Microsoft.Compute/images/img1'


@pytest.fixture
def primary_vm(config):
    return unmanaged_vm_params(config, 'vm1', 'nic-id', 'storage1')


@pytest.fixture
def image(config, primary_vm):
    image = image_params(config.location, primary_vm, 'V2', {3: 'ReadOnly'})
    image.id = IMAGE_ID
    return image


class TestValidateLuns:

    def test_keeps_order(self):
        assert validate_luns([3, 1, 2]) == [3, 1, 2]

    def test_rejects_duplicate(self):
        with pytest.raises(DuplicateLunError) as excinfo:
            validate_luns([1, 2, 1])

        assert excinfo.value.lun == 1


class TestUnmanagedVm:

    def test_data_disks_are_vhd_blobs(self, primary_vm):
        disks = primary_vm.storage_profile.data_disks

        assert [disk.lun for disk in disks] == [1, 2, 3]
        assert [disk.disk_size_gb for disk in disks] == [100, 50, 60]
        assert [disk.vhd.uri for disk in disks] == [
            'https://storage1.blob.core.windows.net/vhds/disk-1.vhd',
            'https://storage1.blob.core.windows.net/vhds/disk-2.vhd',
            'https://storage1.blob.core.windows.net/vhds/disk-3.vhd',
        ]
        assert all(disk.create_option == 'Empty' for disk in disks)

    def test_os_disk(self, primary_vm):
        os_disk = primary_vm.storage_profile.os_disk

        assert os_disk.vhd.uri == vhd_uri('storage1', 'vm1')
        assert os_disk.caching == 'None'
        assert os_disk.create_option == 'FromImage'
        assert os_disk.os_type == 'Linux'

    def test_marketplace_image(self, primary_vm):
        reference = primary_vm.storage_profile.image_reference

        assert (reference.publisher, reference.offer, reference.sku, reference.version) == \
            ('Canonical', 'UbuntuServer', '16.04-LTS', 'latest')

    def test_profiles(self, primary_vm, config):
        assert primary_vm.os_profile.computer_name == 'vm1'
        assert primary_vm.os_profile.admin_username == config.admin_username
        assert primary_vm.hardware_profile.vm_size == 'Standard_DS1_v2'
        assert primary_vm.network_profile.network_interfaces[0].id == 'nic-id'
        assert primary_vm.network_profile.network_interfaces[0].primary is True

    def test_duplicate_configured_lun(self, config):
        config.data_disks = [DataDiskSpec(lun=1, size_gb=10), DataDiskSpec(lun=1, size_gb=20)]

        with pytest.raises(DuplicateLunError):
            unmanaged_vm_params(config, 'vm1', 'nic-id', 'storage1')


class TestImage:

    def test_data_disks_follow_vm_luns(self, image, primary_vm):
        expected = [(disk.lun, disk.vhd.uri) for disk in primary_vm.storage_profile.data_disks]

        assert [(disk.lun, disk.blob_uri) for disk in image.storage_profile.data_disks] == expected

    def test_caching_override(self, image):
        assert [disk.caching for disk in image.storage_profile.data_disks] == [None, None, 'ReadOnly']

    def test_os_disk_is_generalized_linux(self, image):
        os_disk = image.storage_profile.os_disk

        assert os_disk.os_state == 'Generalized'
        assert os_disk.os_type == 'Linux'
        assert os_disk.blob_uri == vhd_uri('storage1', 'vm1')
        assert image.hyper_v_generation == 'V2'

    def test_caching_override_for_missing_lun(self, config, primary_vm):
        with pytest.raises(DiskLayoutError, match=r"\[7\]"):
            image_params(config.location, primary_vm, 'V2', {3: 'ReadOnly', 7: 'ReadOnly'})

    def test_data_disks_sorted_by_lun(self, config, primary_vm):
        primary_vm.storage_profile.data_disks.reverse()

        image = image_params(config.location, primary_vm, 'V2')

        assert [disk.lun for disk in image.storage_profile.data_disks] == [1, 2, 3]


class TestImageVms:

    def test_inherits_every_disk(self, config):
        vm = image_vm_params(config, 'vm2', 'nic2', IMAGE_ID)

        assert vm.storage_profile.image_reference.id == IMAGE_ID
        assert vm.storage_profile.os_disk is None
        assert vm.storage_profile.data_disks is None

    def test_managed_disks_layout(self, config, image):
        vm = image_vm_managed_disks_params(
            config, 'vm3', 'nic3', image,
            {1: 'ReadWrite', 2: 'ReadOnly', 3: 'ReadWrite'},
            [DataDiskSpec(lun=4, size_gb=50)]
        )

        disks = vm.storage_profile.data_disks
        assert [disk.lun for disk in disks] == [1, 2, 3, 4]
        assert [disk.caching for disk in disks[:3]] == ['ReadWrite', 'ReadOnly', 'ReadWrite']
        assert disks[3].create_option == 'Empty'
        assert disks[3].disk_size_gb == 50
        assert all(disk.managed_disk is not None for disk in disks)
        assert vm.storage_profile.os_disk.create_option == 'FromImage'
        assert vm.storage_profile.os_disk.managed_disk is not None
        assert vm.storage_profile.image_reference.id == IMAGE_ID

    def test_extra_disk_on_image_lun_collides(self, config, image):
        with pytest.raises(DuplicateLunError) as excinfo:
            image_vm_managed_disks_params(
                config, 'vm3', 'nic3', image, {1: 'ReadWrite', 3: 'ReadWrite'},
                [DataDiskSpec(lun=3, size_gb=50)]
            )

        assert excinfo.value.lun == 3

    def test_lun_missing_from_image(self, image):
        with pytest.raises(DiskLayoutError, match=r"\[5\]"):
            validate_image_disk_layout(image, [1, 5])

    def test_image_without_data_disks(self):
        image = SimpleNamespace(id=IMAGE_ID, storage_profile=SimpleNamespace(data_disks=None))

        with pytest.raises(DiskLayoutError):
            validate_image_disk_layout(image, [1])


class TestNetworkAndExtension:

    def test_nic_has_private_and_public_configs(self):
        public_ip = SimpleNamespace(id='pip-id')

        nic = network_interface_params('eastus', 'subnet-id', public_ip, 'private', 'public', {})

        private, public = nic.ip_configurations
        assert (private.name, private.primary, private.public_ip_address) == ('private', False, None)
        assert (public.name, public.primary) == ('public', True)
        assert public.public_ip_address.id == 'pip-id'
        assert private.subnet.id == public.subnet.id == 'subnet-id'
        assert nic.network_security_group is None

    def test_nic_references_security_group(self):
        public_ip = SimpleNamespace(id='pip-id')

        nic = network_interface_params(
            'eastus', 'subnet-id', public_ip, 'private', 'public', {},
            network_security_group_id='nsg-id'
        )

        assert nic.network_security_group.id == 'nsg-id'

    def test_security_group_allows_ssh(self):
        nsg = network_security_group_params('eastus', 22, {})

        rule, = nsg.security_rules
        assert (rule.direction, rule.access, rule.protocol) == ('Inbound', 'Allow', 'Tcp')
        assert rule.destination_port_range == '22'

    def test_custom_script_settings(self):
        params = custom_script_extension_params('eastus', ['https://example.com/a.sh'], 'bash a.sh')

        assert params['publisher'] == 'Microsoft.OSTCExtensions'
        assert params['type_properties_type'] == 'CustomScriptForLinux'
        assert params['settings'] == {'fileUris': ['https://example.com/a.sh'], 'commandToExecute': 'bash a.sh'}
