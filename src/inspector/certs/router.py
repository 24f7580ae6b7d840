"""
证书提供服务的 FastAPI 路由定义。
"""

from fastapi import APIRouter, HTTPException
from loguru import logger

from . import services
from .schemas import CertificateSigningRequestBody, ProvisioningResult

router = APIRouter(prefix="/certificates", tags=["Certificates"])


@router.post("/csr", response_model=ProvisioningResult)
async def process_certificate_signing_request(
    req: CertificateSigningRequestBody,
) -> ProvisioningResult:
    """
    设备上的应用提交 CSR，换取客户端证书与 CA 证书。
    """
    try:
        return await services.process_csr_service(req)
    except ValueError as e:
        # CSR 为空、应用名不合法等设备侧数据问题，返回 400
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        # 证书生成、设备定位或交付失败，返回 500
        logger.error(f"处理 {req.os.value} 设备的 CSR 失败: {e}")
        raise HTTPException(status_code=500, detail=f"证书签发失败: {str(e)}")
    except Exception as e:
        logger.exception(f"处理 CSR 时发生未预期的错误: {e}")
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")
