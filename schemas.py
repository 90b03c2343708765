"""
Database Schemas for GU Collab

Each Pydantic model corresponds to a MongoDB collection (see the collection
name constants in database.py). References to other documents are stored as
string ids.
"""
from typing import Optional, Literal, List
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime

Role = Literal["student", "teacher"]
ProjectType = Literal["Project", "Hackathon Team Requirement"]
ProjectStatus = Literal["Active", "Completed", "Cancelled"]
RequestStatus = Literal["Pending", "Accepted", "Rejected"]
NotificationType = Literal[
    "join_request",
    "request_accepted",
    "request_rejected",
    "member_removed",
    "chat_mention",
    "new_message",
]
AttachmentType = Literal["image", "pdf", "link"]


class Visit(BaseModel):
    date: str = Field(..., description="UTC day, YYYY-MM-DD")
    count: int = 1


class CompletedProject(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    learnings: Optional[str] = None
    github_link: Optional[str] = None
    hackathons: List[str] = []
    created_at: Optional[datetime] = None


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Institutional email address")
    password_hash: str = Field(..., description="Password hash")
    role: Role = Field("student", description="User role")
    course: Optional[str] = None
    roll_number: Optional[str] = Field(None, description="Students only; unique among students")
    department: Optional[str] = Field(None, description="Teachers only")
    bio: str = ""
    skills: List[str] = []
    github_id: str = ""
    linkedin_id: str = ""
    profile_image: Optional[str] = Field(None, description="Relative path of the uploaded avatar")
    visits: List[Visit] = []
    completed_projects: List[CompletedProject] = []


class Project(BaseModel):
    title: str
    description: str
    tech_stack: List[str] = []
    type: ProjectType
    required_members: int = Field(..., ge=1)
    admin: str = Field(..., description="Owner user id")
    members: List[str] = []
    deadline: Optional[datetime] = None
    github_link: Optional[str] = None
    status: ProjectStatus = "Active"


class Request(BaseModel):
    project_id: str
    user_id: str
    message: str
    status: RequestStatus = "Pending"


class Notification(BaseModel):
    user_id: str = Field(..., description="Recipient user id")
    type: NotificationType
    title: str
    message: str
    project_id: Optional[str] = None
    actor_id: Optional[str] = Field(None, description="User whose action triggered the notification")
    read: bool = False


class ChatMessage(BaseModel):
    project_id: str
    user_id: str
    user_name: str = Field(..., description="Sender name at send time")
    message: str
    timestamp: datetime


class Attachment(BaseModel):
    type: AttachmentType
    url: str
    name: str = ""


class Announcement(BaseModel):
    title: str
    content: str
    author: str = Field(..., description="Teacher user id")
    attachments: List[Attachment] = []
    deadline: Optional[datetime] = None
    is_active: bool = True


class ResetToken(BaseModel):
    email: EmailStr
    otp: str
    expires_at: datetime
