from app.schemas.stay import StayCreate, StayUpdate, StayResponse, StayChangeResponse, ConflictCheck, ConflictResponse
from app.schemas.draft import OccupancyRecordOut, MonthDraftResponse, DayTotalsOut, MonthlyAveragesOut
from app.schemas.submission import SubmissionCreate, SubmissionResponse, SubmissionDetails
from app.schemas.room import RoomsResponse, RoomNamesUpdate
