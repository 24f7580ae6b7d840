"""
证书提供模块的异常定义。

ValueError 分支表示设备提交的数据不合法（路由返回 400），
RuntimeError 分支表示主机侧处理失败（路由返回 500）。
"""


class ToolchainUnavailableError(RuntimeError):
    """本机未安装 OpenSSL。"""


class ToolchainError(RuntimeError):
    """OpenSSL 子命令执行失败。"""


class CSRValidationError(ValueError):
    """CSR 为空、主题无法解析或应用名不在允许范围内。"""


class CertificateValidityError(RuntimeError):
    """证书已过期、即将过期、无法解析或不是由当前 CA 签发。"""


class DeviceResolutionError(RuntimeError):
    """无法确定是哪台设备提交了 CSR。"""


class DeploymentError(RuntimeError):
    """证书文件无法写入设备或应用目录。"""
