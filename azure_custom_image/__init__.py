"""
Azure custom image sample

Provisions a Linux VM with unmanaged VHD disks, captures a custom image
from it after deprovisioning, deallocation and generalization, creates
further VMs from that image and always cleans up the resource group.
"""

__version__ = "1.0.0"
