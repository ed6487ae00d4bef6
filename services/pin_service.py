"""
PIN 服務：產生與驗證房間的 4 位數 PIN

- 產生使用 secrets（PIN 用來授權 host 操作，不能用一般亂數）
- 只儲存 SHA-256 digest（不加鹽）：PIN 是短期、單一房間用的密碼，
  不是保護長期帳號的密碼
"""
import hashlib
import secrets


PIN_LENGTH = 4


def generate_pin() -> str:
    """
    生成 1000-9999 之間的 4 位數 PIN

    範例："4821"
    """
    return str(1000 + secrets.randbelow(9000))


def hash_pin(pin: str) -> str:
    """回傳 PIN 的 SHA-256 hex digest"""
    return hashlib.sha256(pin.encode("utf-8")).hexdigest()


def pin_matches(pin: str, pin_hash: str) -> bool:
    """
    比對 PIN 與已儲存的 digest

    完全比對（PIN 只有數字，沒有大小寫問題）
    """
    return hash_pin(pin) == pin_hash
