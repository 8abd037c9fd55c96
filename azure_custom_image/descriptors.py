"""
Resource descriptors

Builds the SDK model objects sent to Azure for each resource the sample
creates, and checks data disk layouts before they are submitted.
"""

from typing import Dict, Iterable, List, Optional

from azure.mgmt.compute.models import (
    VirtualMachine, HardwareProfile, StorageProfile, OSDisk, DataDisk,
    NetworkProfile, OSProfile, NetworkInterfaceReference, ImageReference,
    VirtualHardDisk, ManagedDiskParameters, DiskCreateOptionTypes,
    CachingTypes, Image, ImageStorageProfile, ImageOSDisk, ImageDataDisk,
    OperatingSystemTypes, OperatingSystemStateTypes
)
from azure.mgmt.network.models import (
    NetworkInterface, NetworkInterfaceIPConfiguration, NetworkSecurityGroup,
    SecurityRule, PublicIPAddress, PublicIPAddressSku, PublicIPAddressDnsSettings,
    VirtualNetwork, AddressSpace, Subnet
)
from azure.mgmt.storage.models import (
    StorageAccountCreateParameters, Sku, SkuName, Kind
)

from .config import DataDiskSpec, SampleConfig
from .errors import DiskLayoutError, DuplicateLunError

VHD_CONTAINER = 'vhds'
VNET_ADDRESS_PREFIX = '10.0.0.0/16'
SUBNET_ADDRESS_PREFIX = '10.0.0.0/28'

EXTENSION_NAME = 'CustomScriptForLinux'


def validate_luns(luns: Iterable[int]) -> List[int]:
    """Return the LUNs in order, raising DuplicateLunError on a repeat"""
    seen = []
    for lun in luns:
        if lun in seen:
            raise DuplicateLunError(lun)
        seen.append(lun)
    return seen


def vhd_uri(storage_name: str, blob_name: str) -> str:
    return f"https://{storage_name}.blob.core.windows.net/{VHD_CONTAINER}/{blob_name}.vhd"


def resource_group_params(location: str, tags: Dict[str, str]) -> Dict:
    return {'location': location, 'tags': tags}


def storage_account_params(location: str, tags: Dict[str, str]) -> StorageAccountCreateParameters:
    return StorageAccountCreateParameters(
        sku=Sku(name=SkuName.STANDARD_LRS),
        kind=Kind.STORAGE_V2,
        location=location,
        tags=tags
    )


def public_ip_params(location: str, dns_label: str, tags: Dict[str, str]) -> PublicIPAddress:
    return PublicIPAddress(
        location=location,
        sku=PublicIPAddressSku(name='Standard'),
        public_ip_allocation_method='Static',
        dns_settings=PublicIPAddressDnsSettings(domain_name_label=dns_label),
        tags=tags
    )


def network_security_group_params(location: str, ssh_port: int, tags: Dict[str, str]) -> NetworkSecurityGroup:
    """NSG allowing inbound SSH, shared by every NIC"""
    return NetworkSecurityGroup(
        location=location,
        security_rules=[
            SecurityRule(
                name='AllowSSH',
                protocol='Tcp',
                source_address_prefix='*',
                source_port_range='*',
                destination_address_prefix='*',
                destination_port_range=str(ssh_port),
                access='Allow',
                direction='Inbound',
                priority=1000
            )
        ],
        tags=tags
    )


def virtual_network_params(location: str, subnet_name: str, tags: Dict[str, str]) -> VirtualNetwork:
    return VirtualNetwork(
        location=location,
        address_space=AddressSpace(address_prefixes=[VNET_ADDRESS_PREFIX]),
        subnets=[
            Subnet(name=subnet_name, address_prefix=SUBNET_ADDRESS_PREFIX)
        ],
        tags=tags
    )


def network_interface_params(location: str, subnet_id: str, public_ip: PublicIPAddress,
                             private_config_name: str, public_config_name: str,
                             tags: Dict[str, str],
                             network_security_group_id: Optional[str] = None) -> NetworkInterface:
    """NIC with a secondary private-only config and a primary public one"""
    return NetworkInterface(
        location=location,
        ip_configurations=[
            NetworkInterfaceIPConfiguration(
                name=private_config_name,
                private_ip_allocation_method='Dynamic',
                primary=False,
                subnet=Subnet(id=subnet_id)
            ),
            NetworkInterfaceIPConfiguration(
                name=public_config_name,
                private_ip_allocation_method='Dynamic',
                public_ip_address=PublicIPAddress(id=public_ip.id),
                primary=True,
                subnet=Subnet(id=subnet_id)
            )
        ],
        network_security_group=(
            NetworkSecurityGroup(id=network_security_group_id) if network_security_group_id else None
        ),
        tags=tags
    )


def custom_script_extension_params(location: str, script_uris: List[str], command: str) -> Dict:
    return {
        'location': location,
        'publisher': 'Microsoft.OSTCExtensions',
        'type_properties_type': EXTENSION_NAME,
        'type_handler_version': '1.4',
        'auto_upgrade_minor_version': True,
        'settings': {
            'fileUris': list(script_uris),
            'commandToExecute': command
        }
    }


def _vm_params(config: SampleConfig, vm_name: str, nic_id: str,
               storage_profile: StorageProfile) -> VirtualMachine:
    return VirtualMachine(
        location=config.location,
        hardware_profile=HardwareProfile(vm_size=config.vm_size),
        os_profile=OSProfile(
            computer_name=vm_name,
            admin_username=config.admin_username,
            admin_password=config.admin_password
        ),
        network_profile=NetworkProfile(
            network_interfaces=[
                NetworkInterfaceReference(id=nic_id, primary=True)
            ]
        ),
        storage_profile=storage_profile,
        tags=config.tags
    )


def unmanaged_vm_params(config: SampleConfig, vm_name: str, nic_id: str,
                        storage_name: str) -> VirtualMachine:
    """Marketplace image VM whose OS and empty data disks are VHD blobs"""
    validate_luns(disk.lun for disk in config.data_disks)

    data_disks = [
        DataDisk(
            lun=disk.lun,
            name=disk.name or f"disk-{disk.lun}",
            create_option=DiskCreateOptionTypes.EMPTY,
            disk_size_gb=disk.size_gb,
            caching=disk.caching,
            vhd=VirtualHardDisk(uri=vhd_uri(storage_name, disk.name or f"disk-{disk.lun}"))
        )
        for disk in config.data_disks
    ]

    storage_profile = StorageProfile(
        image_reference=ImageReference(
            publisher=config.image_publisher,
            offer=config.image_offer,
            sku=config.image_sku,
            version=config.image_version
        ),
        os_disk=OSDisk(
            name=vm_name,
            os_type=OperatingSystemTypes.LINUX,
            caching=CachingTypes.NONE,
            create_option=DiskCreateOptionTypes.FROM_IMAGE,
            vhd=VirtualHardDisk(uri=vhd_uri(storage_name, vm_name))
        ),
        data_disks=data_disks
    )
    return _vm_params(config, vm_name, nic_id, storage_profile)


def image_params(location: str, vm: VirtualMachine, hyper_v_generation: str,
                 caching_overrides: Optional[Dict[int, str]] = None) -> Image:
    """Custom image from a generalized VM's OS and data disk VHDs.

    Each image data disk keeps the LUN and blob of the VM disk it was
    captured from; caching comes from the VM disk unless overridden for
    that LUN. Overrides for LUNs the VM does not have are rejected.
    """
    caching_overrides = caching_overrides or {}
    os_disk = vm.storage_profile.os_disk
    data_disks = sorted(vm.storage_profile.data_disks or [], key=lambda d: d.lun)
    validate_luns(disk.lun for disk in data_disks)
    unknown = sorted(set(caching_overrides) - {disk.lun for disk in data_disks})
    if unknown:
        raise DiskLayoutError(f"No data disk at LUN(s) {unknown} to override caching for")

    return Image(
        location=location,
        hyper_v_generation=hyper_v_generation,
        storage_profile=ImageStorageProfile(
            os_disk=ImageOSDisk(
                os_type=OperatingSystemTypes.LINUX,
                os_state=OperatingSystemStateTypes.GENERALIZED,
                blob_uri=os_disk.vhd.uri,
                caching=os_disk.caching
            ),
            data_disks=[
                ImageDataDisk(
                    lun=disk.lun,
                    blob_uri=disk.vhd.uri,
                    caching=caching_overrides.get(disk.lun, disk.caching)
                )
                for disk in data_disks
            ]
        )
    )


def image_vm_params(config: SampleConfig, vm_name: str, nic_id: str, image_id: str) -> VirtualMachine:
    """VM from a custom image, inheriting every disk the image defines"""
    storage_profile = StorageProfile(image_reference=ImageReference(id=image_id))
    return _vm_params(config, vm_name, nic_id, storage_profile)


def validate_image_disk_layout(image: Image, from_image_luns: Iterable[int],
                               extra_disks: Iterable[DataDiskSpec] = ()) -> None:
    """Reject a data disk layout that cannot be requested from an image"""
    from_image_luns = list(from_image_luns)
    image_luns = {disk.lun for disk in (image.storage_profile.data_disks or [])}

    validate_luns(from_image_luns + [disk.lun for disk in extra_disks])
    missing = sorted(set(from_image_luns) - image_luns)
    if missing:
        raise DiskLayoutError(f"Image {image.id} has no data disk at LUN(s) {missing}")


def image_vm_managed_disks_params(config: SampleConfig, vm_name: str, nic_id: str, image: Image,
                                  from_image_caching: Dict[int, str],
                                  extra_disks: Iterable[DataDiskSpec] = ()) -> VirtualMachine:
    """VM from a custom image with every disk re-specified as a managed disk.

    Data disks listed in from_image_caching are created from the image's
    disk on the same LUN; extra_disks are new empty managed disks. The
    layout is rejected before anything is sent if a LUN repeats or a
    from-image LUN does not exist in the image.
    """
    extra_disks = list(extra_disks)
    validate_image_disk_layout(image, from_image_caching, extra_disks)

    data_disks = [
        DataDisk(
            lun=lun,
            create_option=DiskCreateOptionTypes.FROM_IMAGE,
            caching=caching,
            managed_disk=ManagedDiskParameters()
        )
        for lun, caching in sorted(from_image_caching.items())
    ]
    data_disks.extend(
        DataDisk(
            lun=disk.lun,
            name=disk.name,
            create_option=DiskCreateOptionTypes.EMPTY,
            disk_size_gb=disk.size_gb,
            caching=disk.caching,
            managed_disk=ManagedDiskParameters()
        )
        for disk in extra_disks
    )

    storage_profile = StorageProfile(
        image_reference=ImageReference(id=image.id),
        os_disk=OSDisk(
            create_option=DiskCreateOptionTypes.FROM_IMAGE,
            managed_disk=ManagedDiskParameters()
        ),
        data_disks=data_disks
    )
    return _vm_params(config, vm_name, nic_id, storage_profile)
