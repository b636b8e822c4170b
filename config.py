"""Configuração da aplicação."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class XsltConfig:
    """Configuração do pré-processamento XSLT."""

    command: str = ""  # Ex.: "saxon -s:{input} -xsl:{stylesheet} -o:{output}"
    temp_dir: Optional[str] = None
    timeout: int = 300

    @classmethod
    def from_env(cls) -> "XsltConfig":
        """Carrega config de variáveis de ambiente."""
        return cls(
            command=os.getenv("MAPPER_XSLT_COMMAND", ""),
            temp_dir=os.getenv("MAPPER_TEMP_DIR") or None,
            timeout=int(os.getenv("MAPPER_XSLT_TIMEOUT", "300")),
        )


@dataclass
class AppConfig:
    """Configuração da aplicação."""

    mapping_dir: str = "./mapping"
    user_mapping_dir: Optional[str] = None
    output_dir: str = "./output"
    log_level: str = "WARNING"
    vocabularies_file: Optional[str] = None
    xslt: XsltConfig = None

    def __post_init__(self):
        """Inicializa valores padrão."""
        if self.xslt is None:
            self.xslt = XsltConfig.from_env()

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Carrega config de variáveis de ambiente."""
        return cls(
            mapping_dir=os.getenv("MAPPER_BASE_DIR", "./mapping"),
            user_mapping_dir=os.getenv("MAPPER_USER_DIR") or None,
            output_dir=os.getenv("MAPPER_OUTPUT_DIR", "./output"),
            log_level=os.getenv("MAPPER_LOG_LEVEL", "WARNING"),
            vocabularies_file=os.getenv("MAPPER_VOCABULARIES") or None,
            xslt=XsltConfig.from_env(),
        )


# Instância global
app_config = AppConfig.from_env()
