"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理

每個異常帶有 status_code，main.py 的 exception handler 依此回傳
統一格式：{"success": false, "error": {"message", "details"}}
"""


class GenderRevealException(Exception):
    """所有業務異常的基類"""
    status_code = 500
    message = "An unexpected error occurred"

    def __init__(self, message=None, details=None):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


# ============ 404：資源不存在 ============

class NotFound(GenderRevealException):
    status_code = 404
    resource = "Resource"

    def __init__(self, resource_id=None):
        self.resource_id = resource_id
        super().__init__(f"{self.resource} not found.")


class RoomNotFound(NotFound):
    """房間不存在"""
    resource = "Room"


class VoteNotFound(NotFound):
    """投票不存在"""
    resource = "Vote"


class UserNotFound(NotFound):
    """使用者不存在"""
    resource = "User"


class TrusteeNotFound(NotFound):
    """建立/修改房間時指定的 Trustee 不存在"""
    resource = "Trustee"


# ============ 409：唯一性 / 狀態衝突 ============

class Conflict(GenderRevealException):
    status_code = 409


class RoomNameTaken(Conflict):
    """房間名稱已被使用"""
    message = "Room name already exists"


class UsernameTaken(Conflict):
    """使用者名稱已被使用"""
    message = "Username already exists"


class RoomClosed(Conflict):
    """房間已關閉投票（優先於重複投票檢查）"""
    message = "Room is closed for voting"


class DuplicateVote(Conflict):
    """同一房間內同一名字只能投一次"""
    message = "This name has already voted in this room"


class InvalidStateTransition(Conflict):
    """非法的狀態轉換（例如輪盤在 done 之後還要 spin）"""
    pass


class RouletteEmpty(Conflict):
    """沒有人猜對，輪盤無人可抽"""
    message = "No participants voted for the revealed category"


# ============ 400 / 401 / 403：驗證相關 ============

class InvalidPin(GenderRevealException):
    """PIN 錯誤"""
    status_code = 400
    message = "Invalid pin"


class HostAccessDenied(GenderRevealException):
    """沒有 host token、token 無效或已過期"""
    status_code = 401
    message = "Host access required"


class HostAccessForbidden(GenderRevealException):
    """token 屬於其他房間"""
    status_code = 403
    message = "Host token does not grant access to this room"
