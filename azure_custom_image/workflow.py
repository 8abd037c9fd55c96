"""
Provisioning workflow

Runs the custom-image sample as an ordered list of steps against an
AzureResourceClient. Each step's result is recorded; the run stops at
the first failure and the resource group is always torn down afterwards.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from azure.mgmt.compute.models import AccessLevel

from . import descriptors
from .client import ResourceKind
from .config import SampleConfig
from .deprovision import deprovision_linux_vm
from .errors import InvalidTransitionError
from .naming import random_name


class LifecycleState(Enum):
    ABSENT = 'absent'
    CREATING = 'creating'
    READY = 'ready'
    DEALLOCATING = 'deallocating'
    DEALLOCATED = 'deallocated'
    GENERALIZING = 'generalizing'
    GENERALIZED = 'generalized'
    IMAGE_CAPTURED = 'image captured'
    SAS_GRANTED = 'SAS granted'


TRANSITIONS = {
    LifecycleState.ABSENT: {LifecycleState.CREATING},
    LifecycleState.CREATING: {LifecycleState.READY},
    LifecycleState.READY: {LifecycleState.DEALLOCATING},
    LifecycleState.DEALLOCATING: {LifecycleState.DEALLOCATED},
    LifecycleState.DEALLOCATED: {LifecycleState.GENERALIZING, LifecycleState.SAS_GRANTED},
    LifecycleState.GENERALIZING: {LifecycleState.GENERALIZED},
    LifecycleState.GENERALIZED: {LifecycleState.IMAGE_CAPTURED},
}


def format_duration(seconds: float) -> str:
    """Format duration in a human-readable way"""
    if seconds < 60:
        return f"{seconds:.1f} seconds"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f} minutes ({seconds:.1f} seconds)"
    else:
        hours = seconds / 3600
        minutes = (seconds % 3600) / 60
        return f"{hours:.1f} hours, {minutes:.1f} minutes ({seconds:.1f} seconds)"


@dataclass
class WorkflowNames:
    """Client-chosen names for every resource the sample creates"""
    resource_group: str
    storage_account: str
    virtual_network: str
    subnet: str
    network_security_group: str
    image: str
    vms: List[str]
    public_ip_labels: List[str]
    nics: List[str]
    private_ip_config: str
    public_ip_config: str

    @classmethod
    def generate(cls) -> 'WorkflowNames':
        return cls(
            resource_group=random_name('rgcomv'),
            storage_account=random_name('storage'),
            virtual_network=random_name('vnet'),
            subnet=random_name('sub'),
            network_security_group=random_name('nsg'),
            image=random_name('img'),
            vms=[random_name(f'vm{i}') for i in (1, 2, 3)],
            public_ip_labels=[random_name('pip') for _ in range(3)],
            nics=[random_name('nic') for _ in range(3)],
            private_ip_config=random_name('config'),
            public_ip_config=random_name('config'),
        )


@dataclass
class WorkflowContext:
    """Everything the steps produce, threaded through the run and into cleanup"""
    names: WorkflowNames
    resource_group_id: Optional[str] = None
    resource_group_deleted: bool = False
    subnet_id: Optional[str] = None
    network_security_group_id: Optional[str] = None
    nic_ids: List[str] = field(default_factory=list)
    primary_vm: Any = None
    guest_deprovisioned: bool = False
    image: Any = None
    final_vm: Any = None
    sas_uri: Optional[str] = None
    states: Dict[str, LifecycleState] = field(default_factory=dict)

    def state_of(self, resource: str) -> LifecycleState:
        return self.states.get(resource, LifecycleState.ABSENT)

    def check_transition(self, resource: str, target: LifecycleState) -> None:
        current = self.state_of(resource)
        if target not in TRANSITIONS.get(current, ()):
            raise InvalidTransitionError(resource, current, target)

    def advance(self, resource: str, target: LifecycleState) -> None:
        self.check_transition(resource, target)
        self.states[resource] = target


@dataclass
class StepOutcome:
    """Result of one workflow step: a value, or the error that stopped the run"""
    name: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class WorkflowResult:
    context: WorkflowContext
    outcomes: List[StepOutcome] = field(default_factory=list)
    cleanup_error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    @property
    def failed_step(self) -> Optional[StepOutcome]:
        for outcome in self.outcomes:
            if not outcome.ok:
                return outcome
        return None

    @property
    def sas_uri(self) -> Optional[str]:
        return self.context.sas_uri


Step = Callable[[WorkflowContext], Any]


class ProvisioningWorkflow:
    """Custom image from VHD sample, one step at a time.

    - Create an un-managed Linux VM from a marketplace image with data disks
    - Deprovision, deallocate and generalize the VM
    - Capture a custom image from the VM's OS and data disk VHDs
    - Create a second VM from the image
    - Create a third VM from the image, configuring its data disks and
      adding another one
    - Get a read-only SAS URI to the third VM's OS disk
    - Delete the custom image and the resource group
    """

    def __init__(self, client, config: SampleConfig,
                 deprovisioner: Callable[[str, int, str, str], bool] = deprovision_linux_vm,
                 names: Optional[WorkflowNames] = None):
        self.client = client
        self.config = config
        self.deprovisioner = deprovisioner
        self.names = names or WorkflowNames.generate()
        self.logger = logging.getLogger(__name__)

    def steps(self) -> List[Tuple[str, Step]]:
        return [
            ("resource group creation", self.create_resource_group),
            ("storage account creation", self.create_storage_account),
            ("network infrastructure creation", self.create_network),
            ("primary VM creation", self.create_primary_vm),
            ("primary VM deprovisioning", self.deprovision_primary_vm),
            ("primary VM deallocation", self.deallocate_primary_vm),
            ("primary VM generalization", self.generalize_primary_vm),
            ("custom image capture", self.capture_image),
            ("VM creation from custom image", self.create_vm_from_image),
            ("VM creation from custom image with managed disks", self.create_vm_with_managed_disks),
            ("final VM deallocation", self.deallocate_final_vm),
            ("OS disk SAS URI grant", self.grant_os_disk_sas),
            ("custom image deletion", self.delete_image),
        ]

    def run(self) -> WorkflowResult:
        ctx = WorkflowContext(names=self.names)
        result = WorkflowResult(context=ctx)
        overall_start = self._log_operation_start("custom image sample")

        with self._resource_group_scope(ctx, result):
            for name, step in self.steps():
                outcome = self._run_step(name, step, ctx)
                result.outcomes.append(outcome)
                if not outcome.ok:
                    break

        if result.succeeded:
            self._log_operation_end("Custom image sample", overall_start)
        else:
            self.logger.error(f"❌ Sample stopped at {result.failed_step.name}")
        return result

    # Logging helpers

    def _log_operation_start(self, operation: str) -> float:
        """Log operation start and return start time"""
        start_time = time.time()
        self.logger.info(f"🚀 Starting {operation} at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        return start_time

    def _log_operation_end(self, operation: str, start_time: float):
        """Log operation completion with duration"""
        duration = time.time() - start_time
        self.logger.info(f"✅ {operation} completed in {format_duration(duration)}")

    def _run_step(self, name: str, step: Step, ctx: WorkflowContext) -> StepOutcome:
        start_time = self._log_operation_start(name)
        try:
            value = step(ctx)
        except Exception as e:
            self.logger.error(f"❌ {name} failed: {e}", exc_info=True)
            return StepOutcome(name, error=e)
        self._log_operation_end(name[0].upper() + name[1:], start_time)
        return StepOutcome(name, value=value)

    # Teardown

    @contextmanager
    def _resource_group_scope(self, ctx: WorkflowContext, result: WorkflowResult):
        """Delete the resource group on every exit path of the block"""
        try:
            yield ctx
        finally:
            result.cleanup_error = self._cleanup(ctx)

    def _cleanup(self, ctx: WorkflowContext) -> Optional[Exception]:
        if ctx.resource_group_id is None:
            self.logger.info("No resource group was created, nothing to clean up")
            return None

        self._log_group_inventory(ctx.names.resource_group)
        try:
            self.logger.info(f"🗑️ Deleting Resource Group: {ctx.resource_group_id}")
            self.client.delete(ResourceKind.RESOURCE_GROUP, ctx.resource_group_id)
            ctx.resource_group_deleted = True
            self.logger.info(f"Deleted Resource Group: {ctx.resource_group_id}")
            return None
        except Exception as e:
            self.logger.error(f"❌ Failed to delete resource group {ctx.resource_group_id}: {e}")
            return e

    def _log_group_inventory(self, rg_name: str):
        try:
            resources = self.client.list_resources(rg_name)
        except Exception as e:
            self.logger.warning(f"⚠️  Could not list resources in {rg_name}: {e}")
            return
        if resources:
            self.logger.info("Resources to be deleted:")
            for resource in resources:
                self.logger.info(f"  - {resource['name']} ({resource['type']})")

    # Resource helpers

    def _create(self, ctx: WorkflowContext, kind: ResourceKind, name: str, descriptor,
                parent: Optional[str] = None):
        key = f"{parent}/{name}" if parent else name
        ctx.advance(key, LifecycleState.CREATING)
        resource = self.client.create_or_update(
            kind, ctx.names.resource_group, name, descriptor, parent=parent
        )
        ctx.advance(key, LifecycleState.READY)
        self.logger.info(f"Created {kind.value}: {resource.id}")
        return resource

    def _create_public_ip_and_nic(self, ctx: WorkflowContext, index: int) -> str:
        names = ctx.names
        public_ip = self._create(
            ctx, ResourceKind.PUBLIC_IP, names.public_ip_labels[index],
            descriptors.public_ip_params(self.config.location, names.public_ip_labels[index], self.config.tags)
        )
        nic = self._create(
            ctx, ResourceKind.NETWORK_INTERFACE, names.nics[index],
            descriptors.network_interface_params(
                self.config.location, ctx.subnet_id, public_ip,
                names.private_ip_config, names.public_ip_config, self.config.tags,
                network_security_group_id=ctx.network_security_group_id
            )
        )
        ctx.nic_ids.append(nic.id)
        return nic.id

    def _deallocate(self, ctx: WorkflowContext, vm_name: str):
        ctx.advance(vm_name, LifecycleState.DEALLOCATING)
        self.logger.info(f"De-allocating VM: {vm_name}")
        self.client.deallocate(ctx.names.resource_group, vm_name)
        ctx.advance(vm_name, LifecycleState.DEALLOCATED)
        self.logger.info(f"De-allocated VM: {vm_name}")

    # Steps

    def create_resource_group(self, ctx: WorkflowContext) -> str:
        if self.config.group_location != self.config.location:
            self.logger.warning(
                f"⚠️  Resource group location {self.config.group_location} differs from "
                f"resource location {self.config.location}"
            )
        resource_group = self._create(
            ctx, ResourceKind.RESOURCE_GROUP, ctx.names.resource_group,
            descriptors.resource_group_params(self.config.group_location, self.config.tags)
        )
        ctx.resource_group_id = resource_group.id
        return resource_group.id

    def create_storage_account(self, ctx: WorkflowContext) -> str:
        storage = self._create(
            ctx, ResourceKind.STORAGE_ACCOUNT, ctx.names.storage_account,
            descriptors.storage_account_params(self.config.location, self.config.tags)
        )
        return storage.id

    def create_network(self, ctx: WorkflowContext) -> str:
        names = ctx.names
        self._create(
            ctx, ResourceKind.VIRTUAL_NETWORK, names.virtual_network,
            descriptors.virtual_network_params(self.config.location, names.subnet, self.config.tags)
        )
        subnet = self.client.get(
            ResourceKind.SUBNET, names.resource_group, names.subnet, parent=names.virtual_network
        )
        ctx.subnet_id = subnet.id

        nsg = self._create(
            ctx, ResourceKind.NETWORK_SECURITY_GROUP, names.network_security_group,
            descriptors.network_security_group_params(self.config.location, self.config.ssh_port, self.config.tags)
        )
        ctx.network_security_group_id = nsg.id
        return self._create_public_ip_and_nic(ctx, 0)

    def create_primary_vm(self, ctx: WorkflowContext) -> str:
        names = ctx.names
        vm_name = names.vms[0]
        self.logger.info("Creating a un-managed Linux VM")

        vm = self._create(
            ctx, ResourceKind.VIRTUAL_MACHINE, vm_name,
            descriptors.unmanaged_vm_params(self.config, vm_name, ctx.nic_ids[0], names.storage_account)
        )
        ctx.primary_vm = vm

        self._create(
            ctx, ResourceKind.VM_EXTENSION, descriptors.EXTENSION_NAME,
            descriptors.custom_script_extension_params(
                self.config.location, self.config.script_uris, self.config.script_command
            ),
            parent=vm_name
        )
        self.logger.info(f"Created a Linux VM with un-managed OS and data disks: {vm.id}")
        return vm.id

    def deprovision_primary_vm(self, ctx: WorkflowContext) -> bool:
        public_ip = self.client.get(
            ResourceKind.PUBLIC_IP, ctx.names.resource_group, ctx.names.public_ip_labels[0]
        )
        ctx.guest_deprovisioned = self.deprovisioner(
            public_ip.ip_address, self.config.ssh_port,
            self.config.admin_username, self.config.admin_password
        )
        if not ctx.guest_deprovisioned:
            self.logger.warning(
                f"⚠️  Could not deprovision {ctx.names.vms[0]} over SSH at {public_ip.ip_address}:{self.config.ssh_port}"
            )
        return ctx.guest_deprovisioned

    def deallocate_primary_vm(self, ctx: WorkflowContext) -> str:
        self._deallocate(ctx, ctx.names.vms[0])
        return ctx.primary_vm.id

    def generalize_primary_vm(self, ctx: WorkflowContext) -> str:
        vm_name = ctx.names.vms[0]
        ctx.advance(vm_name, LifecycleState.GENERALIZING)
        self.logger.info(f"Generalize VM: {ctx.primary_vm.id}")
        self.client.generalize(ctx.names.resource_group, vm_name)
        ctx.advance(vm_name, LifecycleState.GENERALIZED)
        self.logger.info(f"Generalized VM: {ctx.primary_vm.id}")
        return ctx.primary_vm.id

    def capture_image(self, ctx: WorkflowContext) -> str:
        vm_name = ctx.names.vms[0]
        ctx.check_transition(vm_name, LifecycleState.IMAGE_CAPTURED)
        if not ctx.guest_deprovisioned:
            self.logger.warning(f"⚠️  Capturing image from {vm_name}, whose guest was not deprovisioned")
        self.logger.info(f"Creating virtual machine custom image from un-managed disk VHDs: {ctx.primary_vm.id}")

        image = self._create(
            ctx, ResourceKind.IMAGE, ctx.names.image,
            descriptors.image_params(
                self.config.location, ctx.primary_vm, self.config.hyper_v_generation,
                self.config.image_data_disk_caching
            )
        )
        ctx.image = image
        ctx.advance(vm_name, LifecycleState.IMAGE_CAPTURED)
        return image.id

    def create_vm_from_image(self, ctx: WorkflowContext) -> str:
        vm_name = ctx.names.vms[1]
        self.logger.info(f"Creating a Linux VM using custom image: {ctx.image.id}")
        nic_id = self._create_public_ip_and_nic(ctx, 1)
        vm = self._create(
            ctx, ResourceKind.VIRTUAL_MACHINE, vm_name,
            descriptors.image_vm_params(self.config, vm_name, nic_id, ctx.image.id)
        )
        return vm.id

    def create_vm_with_managed_disks(self, ctx: WorkflowContext) -> str:
        vm_name = ctx.names.vms[2]
        from_image_caching = self.config.from_image_data_disk_caching
        extra_disks = [self.config.extra_data_disk]

        # Fail on a bad layout before anything is created for this VM
        descriptors.validate_image_disk_layout(ctx.image, from_image_caching, extra_disks)

        nic_id = self._create_public_ip_and_nic(ctx, 2)
        vm = self._create(
            ctx, ResourceKind.VIRTUAL_MACHINE, vm_name,
            descriptors.image_vm_managed_disks_params(
                self.config, vm_name, nic_id, ctx.image, from_image_caching, extra_disks
            )
        )
        ctx.final_vm = vm
        return vm.id

    def deallocate_final_vm(self, ctx: WorkflowContext) -> str:
        # A managed disk cannot be exported while attached to a running VM
        self._deallocate(ctx, ctx.names.vms[2])
        return ctx.final_vm.id

    def grant_os_disk_sas(self, ctx: WorkflowContext) -> str:
        vm_name = ctx.names.vms[2]
        ctx.check_transition(vm_name, LifecycleState.SAS_GRANTED)
        self.logger.info("Getting OS disk SAS Uri")

        os_disk = self.client.get(
            ResourceKind.DISK, ctx.names.resource_group, ctx.final_vm.storage_profile.os_disk.name
        )
        sas_uri = self.client.grant_disk_access(
            ctx.names.resource_group, os_disk.name, AccessLevel.READ, self.config.sas_duration_minutes
        )
        ctx.sas_uri = sas_uri
        ctx.advance(vm_name, LifecycleState.SAS_GRANTED)
        self.logger.info(f"OS disk SAS Uri: {sas_uri}")
        return sas_uri

    def delete_image(self, ctx: WorkflowContext) -> str:
        self.logger.info(f"Deleting custom Image: {ctx.image.id}")
        self.client.delete(ResourceKind.IMAGE, ctx.image.id)
        self.logger.info("Deleted custom image")
        return ctx.image.id
