from .step_20_partition_fs import PartitionFilesystemStep
from .step_30_install_stage3 import InstallStage3Step
from .step_40_configure_portage import ConfigurePortageStep
from .step_45_prepare_chroot import PrepareChrootStep
from .step_50_sync_portage import SyncPortageStep
from .step_55_configure_system import ConfigureSystemStep
from .step_60_update_world import UpdateWorldStep
from .step_65_install_kernel import InstallKernelStep
from .step_70_write_fstab import WriteFstabStep
from .step_75_install_bootloader import InstallBootloaderStep
from .step_80_install_services import InstallServicesStep
from .step_85_set_root_password import SetRootPasswordStep
from .step_90_finalize import FinalizeStep

__all__ = [
    "PartitionFilesystemStep",
    "InstallStage3Step",
    "ConfigurePortageStep",
    "PrepareChrootStep",
    "SyncPortageStep",
    "ConfigureSystemStep",
    "UpdateWorldStep",
    "InstallKernelStep",
    "WriteFstabStep",
    "InstallBootloaderStep",
    "InstallServicesStep",
    "SetRootPasswordStep",
    "FinalizeStep",
]
