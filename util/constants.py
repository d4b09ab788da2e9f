class InternalURIs:
    API = "/api"
    V1 = API + "/v1"
    EVALUATE_BULK = V1 + "/evaluate-bulk"
    JOB = EVALUATE_BULK + "/{job_id}"
    JOB_RESULTS = JOB + "/results"
    ITEM_RESULT = JOB + "/result/{item_id}"
    RETRY_ITEM = JOB + "/retry/{item_id}"


STRATEGY_LABEL = "single-call-evaluation"
GRADES = ("A+", "A", "B+", "B", "C", "D", "F")
