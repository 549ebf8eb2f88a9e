from turn_orchestrator.tools.echo_tool import EchoTool
from turn_orchestrator.tools.edit_file_tool import EditFileTool
from turn_orchestrator.tools.list_dir_tool import ListDirTool
from turn_orchestrator.tools.pwd_tool import PwdTool
from turn_orchestrator.tools.read_file_tool import ReadFileTool
from turn_orchestrator.tools.time_now_tool import TimeNowTool
from turn_orchestrator.tools.write_file_tool import WriteFileTool

__all__ = [
    "EchoTool",
    "EditFileTool",
    "ListDirTool",
    "PwdTool",
    "ReadFileTool",
    "TimeNowTool",
    "WriteFileTool",
]
