"""Xsl transformation of xml files, with lxml or an external processor."""
import logging
import os
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

import requests
from lxml import etree

logger = logging.getLogger(__name__)

REMOTE_SCHEMES = ("http://", "https://", "ftp://", "sftp://")


class XsltProcessingError(RuntimeError):
    """The transformation of a file cannot produce any output."""

    pass


def is_remote(url: str) -> bool:
    return str(url).startswith(REMOTE_SCHEMES)


class ProcessXslt:
    """
    Transform a xml file with a xsl stylesheet (xslt 1.0 with lxml).

    When a command is set, an external processor is used instead, for example
    Saxon for xslt 2 or 3. The command contains the placeholders "{input}",
    "{stylesheet}" and "{output}", and params are appended as "name=value".
    """

    def __init__(self, command: Optional[str] = None, temp_dir: Optional[str] = None, timeout: int = 300):
        """Initialize processor."""
        self.command = command or None
        self.temp_dir = temp_dir or tempfile.gettempdir()
        self.timeout = timeout
        self._original_url: Optional[str] = None

    def __call__(self, url: str, stylesheet: str, output: str = "", params: Optional[Dict[str, str]] = None) -> str:
        return self.process(url, stylesheet, output, params)

    def process(self, url: str, stylesheet: str, output: str = "", params: Optional[Dict[str, str]] = None) -> str:
        """
        Transform a local or remote file and return the path of the output.

        A remote input is downloaded to a temporary file, removed afterwards.
        """
        params = params or {}
        self._original_url = url
        filepath = url
        remote = is_remote(url)

        if remote:
            filepath = self._download_to_temp(url)
            if filepath is None:
                raise XsltProcessingError(f"The remote file {url} is not readable or empty.")
        elif not os.path.isfile(filepath) or not os.access(filepath, os.R_OK) or not os.path.getsize(filepath):
            raise XsltProcessingError(f"The input file {filepath} is not readable or empty.")

        try:
            if self.command:
                return self._process_external(filepath, stylesheet, output, params)
            return self._process_lxml(filepath, stylesheet, output, params)
        finally:
            if remote and filepath and os.path.exists(filepath):
                os.unlink(filepath)
            self._original_url = None

    def process_string(self, content: str, stylesheet: str, params: Optional[Dict[str, str]] = None) -> str:
        """
        Transform a xml string.

        The stylesheet is a file path or a xsl content.
        """
        input_path = self._write_temp(content, "mapper_xml_")
        stylesheet_path = None
        if stylesheet.lstrip().startswith("<"):
            stylesheet_path = self._write_temp(stylesheet, "mapper_xsl_", ".xsl")
        output = None
        try:
            output = self.process(input_path, stylesheet_path or stylesheet, "", params)
            with open(output, "r", encoding="utf-8") as f:
                return f.read()
        finally:
            for path in (input_path, stylesheet_path, output):
                if path and os.path.exists(path):
                    os.unlink(path)

    def _download_to_temp(self, url: str) -> Optional[str]:
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Unable to download {url}: {e}")
            return None
        if not response.content:
            return None
        with tempfile.NamedTemporaryFile(prefix="mapper_xml_", suffix=".xml", dir=self.temp_dir, delete=False) as f:
            f.write(response.content)
            return f.name

    def _write_temp(self, content: str, prefix: str, suffix: str = ".xml") -> str:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", prefix=prefix, suffix=suffix, dir=self.temp_dir, delete=False
        ) as f:
            f.write(content)
            return f.name

    def _create_temp_output(self) -> str:
        with tempfile.NamedTemporaryFile(prefix="mapper_xsl_", suffix=".xml", dir=self.temp_dir, delete=False) as f:
            return f.name

    def _process_lxml(self, filepath: str, stylesheet: str, output: str, params: Dict[str, str]) -> str:
        output = output or self._create_temp_output()
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        access_control = etree.XSLTAccessControl(
            read_network=False, write_network=False, write_file=False, create_dir=False
        )

        try:
            document = etree.parse(filepath, parser)
            transform = etree.XSLT(etree.parse(stylesheet, parser), access_control=access_control)
            result = transform(document, **{k: etree.XSLT.strparam(str(v)) for k, v in params.items()})
        except (etree.XMLSyntaxError, etree.XSLTError, OSError) as e:
            self._remove(output)
            raise XsltProcessingError(self._error_message(filepath, stylesheet, str(e))) from e

        content = bytes(result)
        if not content.strip():
            self._remove(output)
            errors = "; ".join(str(entry) for entry in transform.error_log)
            raise XsltProcessingError(self._error_message(filepath, stylesheet, errors or "The output is empty."))

        with open(output, "wb") as f:
            f.write(content)
        os.chmod(output, 0o640)
        return output

    def _process_external(self, filepath: str, stylesheet: str, output: str, params: Dict[str, str]) -> str:
        output = output or self._create_temp_output()
        command = (
            self.command
            .replace("{input}", shlex.quote(filepath))
            .replace("{stylesheet}", shlex.quote(stylesheet))
            .replace("{output}", shlex.quote(output))
        )
        for name, value in params.items():
            command += " " + shlex.quote(f"{name}={value}")

        logger.debug(f"Running xsl command: {command}")
        try:
            completed = subprocess.run(command, shell=True, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            self._remove(output)
            raise XsltProcessingError(self._error_message(filepath, stylesheet, f"Timeout after {e.timeout}s.")) from e

        if completed.returncode != 0:
            self._remove(output)
            message = (completed.stderr or completed.stdout or "").strip() or f"Exit code {completed.returncode}."
            raise XsltProcessingError(self._error_message(filepath, stylesheet, message))

        if not os.path.exists(output) or not os.path.getsize(output):
            self._remove(output)
            raise XsltProcessingError(self._error_message(filepath, stylesheet, "The output is empty."))

        os.chmod(output, 0o640)
        return output

    def _error_message(self, filepath: str, stylesheet: str, errors: str) -> str:
        return (
            f"An error occurred during the xsl transformation of the file {self.format_file_ref(filepath)} "
            f"with the sheet {self.format_file_ref(stylesheet)}: {errors}"
        )

    @staticmethod
    def _remove(path: Union[str, Path]) -> None:
        if path and os.path.exists(path):
            os.unlink(path)

    def format_file_ref(self, filepath: str) -> str:
        """Name of a file for messages: the original url of a downloaded file, else the base name."""
        if is_remote(filepath):
            return filepath
        if self._original_url and str(filepath).startswith(str(self.temp_dir)):
            return self._original_url
        return os.path.basename(filepath)

    def set_command(self, command: Optional[str]) -> "ProcessXslt":
        self.command = command or None
        return self

    def get_command(self) -> Optional[str]:
        return self.command

    def set_temp_dir(self, temp_dir: str) -> "ProcessXslt":
        self.temp_dir = temp_dir
        return self

    def get_temp_dir(self) -> str:
        return self.temp_dir

    def has_external_processor(self) -> bool:
        return bool(self.command)

    @staticmethod
    def is_xsl_available() -> bool:
        return hasattr(etree, "XSLT")
