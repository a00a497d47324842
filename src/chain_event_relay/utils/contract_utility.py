import json
from pathlib import Path
from typing import Any


def load_contract_abi(path: str | Path) -> list[dict[str, Any]]:
    """
    Load a contract ABI from a JSON file.

    Accepts both a compiler/Hardhat artifact (``{"abi": [...]}``) and a bare
    ABI list.

    Args:
        path: Path of the JSON file

    Returns:
        The ABI entries

    Raises:
        ValueError: If the file is missing or holds no ABI
    """
    contract_path = Path(path).resolve()
    try:
        with contract_path.open() as file:
            contract_data = json.load(file)
    except FileNotFoundError:
        raise ValueError(f"Contract ABI file not found: {contract_path}") from None
    except json.JSONDecodeError as e:
        raise ValueError(f"Contract ABI file is not valid JSON: {contract_path}: {e}") from None

    abi = contract_data.get("abi") if isinstance(contract_data, dict) else contract_data
    if not isinstance(abi, list):
        raise ValueError(f"No ABI list found in {contract_path}")

    return abi
